"""Email address normalisation. Emails are stored case-folded everywhere."""

import re

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    """Trim and case-fold; raises ValueError for malformed addresses."""
    if not email or not isinstance(email, str):
        raise ValueError("Invalid email address")
    normalized = email.strip().lower()
    if not _EMAIL_PATTERN.match(normalized):
        raise ValueError("Invalid email address")
    return normalized


def mask_email(email: str) -> str:
    """Log-safe form of an address: j***@example.com."""
    local, _, domain = (email or "").partition("@")
    if not domain:
        return "***"
    return f"{local[:1]}***@{domain}"
