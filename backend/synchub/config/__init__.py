"""Configuration module for backend services."""

from synchub.config.settings import (
    DEFAULT_APP_BASE_URL,
    DEFAULT_EMAIL_FROM,
    DEFAULT_INVITATION_TOKEN_ATTEMPTS,
    DEFAULT_INVITATION_TTL_HOURS,
    AccessControlSettings,
    get_settings,
    normalize_database_url,
)

__all__ = [
    "DEFAULT_APP_BASE_URL",
    "DEFAULT_EMAIL_FROM",
    "DEFAULT_INVITATION_TOKEN_ATTEMPTS",
    "DEFAULT_INVITATION_TTL_HOURS",
    "AccessControlSettings",
    "get_settings",
    "normalize_database_url",
]
