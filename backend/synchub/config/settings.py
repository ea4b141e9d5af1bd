"""
Environment-driven settings for the access-control backend.

All values come from environment variables so the API process, the
cleanup cron job and the test suite read the same knobs:

- DATABASE_URL: SQLAlchemy URL (postgres:// is normalised to postgresql://)
- APP_BASE_URL: public origin used to build invitation links
- INVITATION_TTL_HOURS: default invitation lifetime (72)
- INVITATION_TOKEN_ATTEMPTS: insert retries on token collision (5)
- INVITATION_CLEANUP_DRY_RUN: count only, do not expire rows
- RESEND_API_KEY / EMAIL_FROM: outbound email delivery
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_INVITATION_TTL_HOURS = 72
DEFAULT_INVITATION_TOKEN_ATTEMPTS = 5
DEFAULT_APP_BASE_URL = "http://localhost:8080"
DEFAULT_EMAIL_FROM = "noreply@bsale-sync-hub.com"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(
            "Ignoring non-integer setting",
            extra={"setting": name, "value": raw},
        )
        return default
    if value <= 0:
        logger.warning(
            "Ignoring non-positive setting",
            extra={"setting": name, "value": value},
        )
        return default
    return value


def normalize_database_url(database_url: str) -> str:
    """Rewrite Heroku/Render style postgres:// URLs for SQLAlchemy."""
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


@dataclass(frozen=True)
class AccessControlSettings:
    """Settings snapshot loaded from the environment."""
    database_url: Optional[str] = None
    app_base_url: str = DEFAULT_APP_BASE_URL
    invitation_ttl_hours: int = DEFAULT_INVITATION_TTL_HOURS
    invitation_token_attempts: int = DEFAULT_INVITATION_TOKEN_ATTEMPTS
    invitation_cleanup_dry_run: bool = False
    resend_api_key: Optional[str] = None
    email_from: str = DEFAULT_EMAIL_FROM

    @classmethod
    def from_env(cls) -> "AccessControlSettings":
        """Load configuration from environment variables."""
        database_url = os.getenv("DATABASE_URL")
        if database_url:
            database_url = normalize_database_url(database_url)

        return cls(
            database_url=database_url,
            app_base_url=os.getenv("APP_BASE_URL", DEFAULT_APP_BASE_URL).rstrip("/"),
            invitation_ttl_hours=_env_int(
                "INVITATION_TTL_HOURS", DEFAULT_INVITATION_TTL_HOURS
            ),
            invitation_token_attempts=_env_int(
                "INVITATION_TOKEN_ATTEMPTS", DEFAULT_INVITATION_TOKEN_ATTEMPTS
            ),
            invitation_cleanup_dry_run=_env_bool("INVITATION_CLEANUP_DRY_RUN", False),
            resend_api_key=os.getenv("RESEND_API_KEY") or None,
            email_from=os.getenv("EMAIL_FROM", DEFAULT_EMAIL_FROM),
        )


def get_settings() -> AccessControlSettings:
    """Return settings read from the current environment."""
    return AccessControlSettings.from_env()
