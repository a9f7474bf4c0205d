from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

TRUTHY_ENV_VALUES = {"1", "true", "yes", "on"}
logger = logging.getLogger("careercoach.config")

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
DEFAULT_TOKEN_SECRET = "replace-this-in-production"


def env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in TRUTHY_ENV_VALUES


def env_int(name: str, default: int, lower: int | None = None, upper: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        logger.warning("%s=%r is not an integer. Using %s.", name, raw, default)
        value = default
    if lower is not None:
        value = max(lower, value)
    if upper is not None:
        value = min(upper, value)
    return value


def parse_cors_origins(value: str | None) -> list[str]:
    if not value:
        return DEFAULT_CORS_ORIGINS
    origins = [origin.strip() for origin in value.split(",") if origin.strip()]
    return origins or DEFAULT_CORS_ORIGINS


def normalize_database_url(value: str | None) -> str:
    raw = (value or "").strip()
    if raw.startswith("postgres://"):
        return "postgresql://" + raw[len("postgres://") :]
    return raw


def resolve_db_path() -> str:
    explicit = (os.getenv("CAREERCOACH_DB_PATH") or "").strip()
    if explicit:
        return explicit
    if os.path.isdir("/var/data"):
        return "/var/data/careercoach.db"
    return os.path.join(os.path.dirname(__file__), "data", "careercoach.db")


@dataclass(frozen=True)
class Settings:
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: int = 60
    database_url: str = ""
    db_path: str = ""
    auth_token_secret: str = DEFAULT_TOKEN_SECRET
    auth_token_ttl_hours: int = 720
    cors_allow_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    cors_allow_origin_regex: str | None = None
    quiz_question_seconds: int = 60
    log_level: str = "INFO"

    @property
    def db_backend(self) -> str:
        return "postgres" if self.database_url.startswith("postgresql://") else "sqlite"

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            openai_api_key=(os.getenv("OPENAI_API_KEY") or "").strip(),
            openai_model=(os.getenv("OPENAI_MODEL") or "gpt-4o-mini").strip(),
            openai_timeout_seconds=env_int("OPENAI_TIMEOUT_SECONDS", 60, lower=5, upper=600),
            database_url=normalize_database_url(os.getenv("DATABASE_URL")),
            db_path=resolve_db_path(),
            auth_token_secret=(os.getenv("AUTH_TOKEN_SECRET") or DEFAULT_TOKEN_SECRET).strip(),
            auth_token_ttl_hours=env_int("AUTH_TOKEN_TTL_HOURS", 720, lower=1),
            cors_allow_origins=parse_cors_origins(os.getenv("CORS_ALLOW_ORIGINS")),
            cors_allow_origin_regex=os.getenv("CORS_ALLOW_ORIGIN_REGEX"),
            quiz_question_seconds=env_int("QUIZ_QUESTION_SECONDS", 60, lower=5, upper=600),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        )
        settings.warn_unsafe_defaults()
        return settings

    def warn_unsafe_defaults(self) -> None:
        if not self.openai_api_key:
            logger.warning("OPENAI_API_KEY is missing. Insight and quiz generation will fail.")
        if self.auth_token_secret == DEFAULT_TOKEN_SECRET:
            logger.warning("AUTH_TOKEN_SECRET is using a default value. Set AUTH_TOKEN_SECRET in production.")
        if self.db_backend == "sqlite" and self.db_path.startswith("/tmp/"):
            logger.warning("CAREERCOACH_DB_PATH is using temporary storage (%s).", self.db_path)
