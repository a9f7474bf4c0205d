from __future__ import annotations

import logging
from typing import Any

from .db import Database
from .errors import NotFoundError
from .insights import normalize_industry_key, resolve_insights
from .llm import TextGenerator, safe_text
from .store import fetch_user_by_external_id, update_user_profile, upsert_user_identity

logger = logging.getLogger("careercoach.users")


def parse_skills(value: str | list[str] | None) -> list[str]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, list):
        items = value
    else:
        return []
    return [safe_text(item) for item in items if safe_text(item)]


def parse_experience(value: Any) -> int:
    try:
        return max(0, int(str(value).strip()))
    except (TypeError, ValueError):
        return 0


def display_name_from_email(email: str) -> str:
    local = safe_text(email).split("@", 1)[0]
    return " ".join(part.capitalize() for part in local.replace(".", " ").replace("_", " ").split()) or "Member"


def sync_user(db: Database, claims: dict[str, Any]) -> dict[str, Any]:
    external_id = safe_text(claims.get("sub"))
    email = safe_text(claims.get("email")).lower()
    name = safe_text(claims.get("name")) or display_name_from_email(email)
    return upsert_user_identity(db, external_id, email, name)


def require_user(db: Database, external_id: str) -> dict[str, Any]:
    user = fetch_user_by_external_id(db, external_id)
    if not user:
        raise NotFoundError("User not found.")
    return user


def require_industry(user: dict[str, Any]) -> str:
    industry = safe_text(user.get("industry"))
    if not industry:
        raise NotFoundError("No industry set. Complete onboarding first.")
    return industry


def onboarding_status(user: dict[str, Any]) -> dict[str, bool]:
    return {"isOnboarded": bool(safe_text(user.get("industry")))}


def update_profile(
    db: Database,
    generator: TextGenerator,
    user: dict[str, Any],
    industry: str,
    experience: Any = None,
    bio: str | None = None,
    skills: str | list[str] | None = None,
) -> dict[str, Any]:
    industry = normalize_industry_key(industry)

    # The insight row must exist before the user points at it.
    resolve_insights(db, generator, industry)

    update_user_profile(db, int(user["id"]), industry, parse_experience(experience), bio, parse_skills(skills))
    logger.info("Profile updated for user %s (industry=%s).", user["id"], industry)
    return require_user(db, str(user["externalId"]))
