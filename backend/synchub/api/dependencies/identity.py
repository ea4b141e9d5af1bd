"""
Caller identity and store context for request handlers.

The auth subject comes from upstream auth middleware
(request.state.auth_subject_id) or, in development, the X-Auth-Subject
header. It is resolved to an active Profile on every request; the profile
is never taken from the client.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from synchub.database.session import get_db_session
from synchub.models.profile import Profile
from synchub.platform.audit import extract_client_info
from synchub.platform.errors import AuthenticationError
from synchub.services.store_context_service import StoreContextService, StoreContextSession

logger = logging.getLogger(__name__)

AUTH_SUBJECT_HEADER = "X-Auth-Subject"
STORE_ID_HEADER = "X-Store-Id"


def get_correlation_id(request: Request) -> Optional[str]:
    return getattr(request.state, "correlation_id", None)


def get_auth_subject(request: Request) -> Optional[str]:
    """Auth subject set by auth middleware, else the development header."""
    subject = getattr(request.state, "auth_subject_id", None)
    if subject:
        return subject
    return request.headers.get(AUTH_SUBJECT_HEADER) or None


def require_auth_subject(request: Request) -> str:
    subject = get_auth_subject(request)
    if not subject:
        raise AuthenticationError()
    return subject


def get_optional_profile(
    request: Request,
    db: Session = Depends(get_db_session),
) -> Optional[Profile]:
    """Active profile linked to the caller's subject, if any."""
    subject = get_auth_subject(request)
    if not subject:
        return None
    return db.query(Profile).filter(
        Profile.auth_subject_id == subject,
        Profile.is_active == True,  # noqa: E712
    ).first()


def get_current_profile(
    request: Request,
    profile: Optional[Profile] = Depends(get_optional_profile),
) -> Profile:
    """
    Resolve the caller's profile.

    Raises:
        AuthenticationError: No subject, or no active profile linked to it
    """
    if profile is None:
        logger.info(
            "Unresolvable caller identity",
            extra={"path": request.url.path, "has_subject": bool(get_auth_subject(request))},
        )
        raise AuthenticationError()
    return profile


def get_store_context(
    request: Request,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db_session),
) -> StoreContextSession:
    """Store context seeded with the client's X-Store-Id selection."""
    ip_address, user_agent = extract_client_info(request)
    return StoreContextService(db, correlation_id=get_correlation_id(request)).for_profile(
        profile,
        selected_store_id=request.headers.get(STORE_ID_HEADER) or None,
        ip_address=ip_address,
        user_agent=user_agent,
    )
