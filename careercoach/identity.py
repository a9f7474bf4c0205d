from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any

from .errors import AuthorizationError
from .llm import safe_text


def b64url_encode(value: bytes) -> str:
    return base64.urlsafe_b64encode(value).decode("utf-8").rstrip("=")


def b64url_decode(value: str) -> bytes:
    padding = "=" * ((4 - (len(value) % 4)) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _sign(secret: str, payload_b64: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), payload_b64.encode("utf-8"), hashlib.sha256).digest()


def create_identity_token(secret: str, subject: str, email: str = "", name: str = "", ttl_hours: int = 720) -> str:
    payload = {
        "sub": safe_text(subject),
        "email": safe_text(email).lower(),
        "name": safe_text(name),
        "exp": int(time.time()) + max(1, ttl_hours) * 3600,
    }
    payload_b64 = b64url_encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    return f"{payload_b64}.{b64url_encode(_sign(secret, payload_b64))}"


def decode_identity_token(secret: str, token: str) -> dict[str, Any]:
    parts = safe_text(token).split(".")
    if len(parts) != 2:
        raise AuthorizationError("Invalid authentication token.")

    payload_b64, signature_b64 = parts
    try:
        provided = b64url_decode(signature_b64)
    except ValueError as exc:
        raise AuthorizationError("Invalid authentication token signature.") from exc

    if not hmac.compare_digest(_sign(secret, payload_b64), provided):
        raise AuthorizationError("Invalid authentication token signature.")

    try:
        payload = json.loads(b64url_decode(payload_b64).decode("utf-8"))
    except ValueError as exc:
        raise AuthorizationError("Invalid authentication token payload.") from exc

    if not isinstance(payload, dict) or not safe_text(payload.get("sub")):
        raise AuthorizationError("Invalid authentication token payload.")
    if int(payload.get("exp", 0)) < int(time.time()):
        raise AuthorizationError("Authentication token expired. Please log in again.")

    return payload


def extract_bearer_token(authorization_header: str | None) -> str | None:
    header = safe_text(authorization_header)
    if header.lower().startswith("bearer "):
        return safe_text(header[7:]) or None
    return None
