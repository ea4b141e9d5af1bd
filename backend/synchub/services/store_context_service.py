"""
Store context for an authenticated caller.

This service handles:
- Listing the caller's accessible stores
- Selecting the active store (validated against the database, never trusted)
- Re-resolving the selection on every read
- Falling back to the first accessible store when the selection goes stale
- Emitting audit events for selections and cross-store attempts

SECURITY REQUIREMENTS:
- NEVER trust a store id from the client without re-resolving access
- Emit an audit event on every denied selection

The only persisted state is the selected store id, which the caller keeps
(the X-Store-Id header or client storage). Each StoreContextSession belongs
to one profile; there is no process-wide current store.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from synchub.access.models import UserStoreAccess
from synchub.access.resolver import StoreAccessResolver
from synchub.database.session import atomic
from synchub.models.profile import Profile
from synchub.platform.audit import (
    AuditAction,
    AuditEvent,
    AuditOutcome,
    write_audit_log_sync,
)
from synchub.platform.errors import StoreAccessDeniedError

logger = logging.getLogger(__name__)


class StoreContextSession:
    """Current-store selection for a single profile."""

    def __init__(
        self,
        session: Session,
        profile: Profile,
        selected_store_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ):
        self.session = session
        self.profile = profile
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.ip_address = ip_address
        self.user_agent = user_agent
        self.resolver = StoreAccessResolver(session)
        self._selected_store_id = selected_store_id

    @property
    def selected_store_id(self) -> Optional[str]:
        """Store id to persist on the caller's side."""
        return self._selected_store_id

    def accessible_stores(self) -> List[UserStoreAccess]:
        return self.resolver.accessible_stores(self.profile)

    def select(self, store_id: str) -> UserStoreAccess:
        """
        Make ``store_id`` the current store.

        Raises:
            StoreAccessDeniedError: Store not in the profile's resolved access
        """
        accesses = self.accessible_stores()
        access = next((a for a in accesses if a.store_id == store_id), None)

        if access is None:
            with atomic(self.session):
                self._emit_cross_store_attempt(store_id)
            logger.warning(
                "Denied store selection",
                extra={"profile_id": self.profile.id, "requested_store_id": store_id},
            )
            raise StoreAccessDeniedError()

        previous_store_id = self._selected_store_id
        self._selected_store_id = store_id

        with atomic(self.session):
            self._emit_store_selected(access, previous_store_id)

        logger.info(
            "Selected store",
            extra={
                "profile_id": self.profile.id,
                "store_id": store_id,
                "previous_store_id": previous_store_id,
                "role_in_store": access.role_in_store.value,
            },
        )
        return access

    def current(self) -> Optional[UserStoreAccess]:
        """
        Access record for the selected store, recomputed on every call.

        When nothing is selected, or the selection is no longer accessible,
        the selection moves to default_selection(). Returns None when the
        profile has no accessible store at all.
        """
        accesses = self.accessible_stores()
        if self._selected_store_id is not None:
            for access in accesses:
                if access.store_id == self._selected_store_id:
                    return access

        fallback = accesses[0] if accesses else None
        if fallback is None:
            if self._selected_store_id is not None:
                logger.info(
                    "Cleared stale store selection",
                    extra={"profile_id": self.profile.id, "store_id": self._selected_store_id},
                )
            self._selected_store_id = None
            return None

        if self._selected_store_id is not None:
            logger.info(
                "Store selection no longer valid, falling back",
                extra={
                    "profile_id": self.profile.id,
                    "stale_store_id": self._selected_store_id,
                    "store_id": fallback.store_id,
                },
            )
        self._selected_store_id = fallback.store_id
        return fallback

    def default_selection(self) -> Optional[str]:
        """Id of the first accessible store, or None."""
        accesses = self.accessible_stores()
        return accesses[0].store_id if accesses else None

    # =========================================================================
    # Audit Event Emission
    # =========================================================================

    def _emit_store_selected(self, access: UserStoreAccess, previous_store_id: Optional[str]) -> None:
        write_audit_log_sync(
            db=self.session,
            event=AuditEvent(
                action=AuditAction.AUTH_STORE_SELECTED,
                outcome=AuditOutcome.SUCCESS,
                store_id=access.store_id,
                user_id=self.profile.id,
                ip_address=self.ip_address,
                user_agent=self.user_agent,
                correlation_id=self.correlation_id,
                resource_type="store",
                resource_id=access.store_id,
                metadata={
                    "previous_store_id": previous_store_id,
                    "role_in_store": access.role_in_store.value,
                },
            ),
        )

    def _emit_cross_store_attempt(self, requested_store_id: str) -> None:
        write_audit_log_sync(
            db=self.session,
            event=AuditEvent(
                action=AuditAction.AUTH_CROSS_STORE_ACCESS_ATTEMPT,
                outcome=AuditOutcome.DENIED,
                store_id=requested_store_id,
                user_id=self.profile.id,
                ip_address=self.ip_address,
                user_agent=self.user_agent,
                correlation_id=self.correlation_id,
                resource_type="store",
                resource_id=requested_store_id,
                error_code="STORE_ACCESS_DENIED",
                metadata={"requested_store_id": requested_store_id},
            ),
        )


class StoreContextService:
    """Builds per-profile store context sessions for request handlers."""

    def __init__(self, session: Session, correlation_id: Optional[str] = None):
        self.session = session
        self.correlation_id = correlation_id or str(uuid.uuid4())

    def for_profile(
        self,
        profile: Profile,
        selected_store_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> StoreContextSession:
        return StoreContextSession(
            self.session,
            profile,
            selected_store_id=selected_store_id,
            correlation_id=self.correlation_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
