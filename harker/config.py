# harker/config.py
import logging
import os

from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing or invalid."""


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {name}")
    return value


def _flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _csv(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


# Database
DATABASE_URL = _require("DATABASE_URL")
SQL_ECHO = _flag("SQL_ECHO")

# Sessions
SESSION_SECRET = _require("SESSION_SECRET")
SESSION_ALGORITHM = "HS256"
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "harker.sid")
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "24"))
SESSION_COOKIE_SECURE = _flag("SESSION_COOKIE_SECURE")

# "session" keeps state in the sessions table, "bearer" asks the identity provider
AUTH_STRATEGY = os.getenv("AUTH_STRATEGY", "session").lower()
IDENTITY_PROVIDER_URL = os.getenv("IDENTITY_PROVIDER_URL")
IDENTITY_PROVIDER_KEY = os.getenv("IDENTITY_PROVIDER_KEY")
ADMIN_USERNAMES = _csv("ADMIN_USERNAMES")

if AUTH_STRATEGY not in {"session", "bearer"}:
    raise ConfigurationError(f"Unknown AUTH_STRATEGY: {AUTH_STRATEGY}")
if AUTH_STRATEGY == "bearer" and not IDENTITY_PROVIDER_URL:
    raise ConfigurationError("IDENTITY_PROVIDER_URL is required when AUTH_STRATEGY=bearer")

# Speech-to-text
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")
TRANSCRIPTION_MODEL = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
TRANSCRIPTION_LANGUAGE = os.getenv("TRANSCRIPTION_LANGUAGE", "en")

# HTTP
LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "5/minute")
CORS_ORIGINS = _csv("CORS_ORIGINS", "*")

# Bootstrap
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
SEED_DATABASE = _flag("SEED_DATABASE")

# Observability
SENTRY_DSN = os.getenv("SENTRY_DSN")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
