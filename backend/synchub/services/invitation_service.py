"""
InvitationService for email-based store onboarding.

Handles:
- Creating invitations (store owner or admin)
- Admin onboarding: store, placeholder owner and owner invitation together
- Validating tokens (read-only)
- Accepting invitations, atomically
- Cancelling and resending invitations
- Expiring stale invitations (scheduled job)
- Audit event emission

State machine:
    pending --accept--> accepted     (terminal)
    pending --cancel--> cancelled    (terminal)
    pending --expiry--> expired      (read-time fact; persisted by the sweep)
    pending|expired --resend--> pending   (new token, new expiry)

Every status change is a single UPDATE guarded by the expected prior state.
rowcount decides who won; there is no read-then-write on status.
"""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from synchub.access.permissions import require_store_manager
from synchub.config.settings import AccessControlSettings, get_settings
from synchub.database.session import atomic
from synchub.models.invitation import (
    ACTIVE_INVITATION_STATUSES,
    Invitation,
    InvitationRole,
    InvitationStatus,
)
from synchub.models.profile import GlobalRole, Profile
from synchub.models.store import Store
from synchub.platform.audit import (
    AuditAction,
    AuditEvent,
    AuditOutcome,
    write_audit_log_sync,
)
from synchub.platform.errors import (
    AppError,
    DuplicateActiveInvitationError,
    InvalidTransitionError,
    InvitationExpiredError,
    InvitationNotPendingError,
    NotFoundError,
    UnauthorizedOperationError,
    ValidationError,
)
from synchub.services.tenant_directory_service import TenantDirectoryService
from synchub.utils.clock import Clock, ensure_utc, utc_now
from synchub.utils.email import mask_email, normalize_email

logger = logging.getLogger(__name__)

RESENDABLE_STATUSES = (InvitationStatus.PENDING, InvitationStatus.EXPIRED)

TOKEN_BYTES = 32


def generate_invitation_token() -> str:
    """URL-safe bearer token with 256 bits of entropy."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def build_invitation_url(base_url: str, token: str) -> str:
    """Public accept link: {base}/invitation/accept?token=<urlencoded>."""
    return f"{base_url.rstrip('/')}/invitation/accept?token={quote(token, safe='')}"


@dataclass(frozen=True)
class InvitationValidation:
    """Read-only verdict on a token."""
    valid: bool
    reason: Optional[str] = None
    invitation: Optional[Invitation] = None


@dataclass(frozen=True)
class InvitationAcceptanceResult:
    success: bool
    store_id: str
    invitation_id: str
    profile_id: str


@dataclass(frozen=True)
class StoreOnboarding:
    """Store created for a locatario, its owner profile and the owner invitation."""
    store: Store
    profile: Profile
    invitation: Invitation


class InvitationService:
    """Service for the invitation lifecycle."""

    def __init__(
        self,
        session: Session,
        correlation_id: Optional[str] = None,
        clock: Clock = utc_now,
        settings: Optional[AccessControlSettings] = None,
        token_factory: Callable[[], str] = generate_invitation_token,
    ):
        """
        Initialize service with database session.

        Args:
            session: SQLAlchemy session for database operations
            correlation_id: Optional correlation ID for audit event tracing
            clock: Source of "now"; injectable for expiry tests
            settings: Defaults for TTL, retry attempts and link base URL
            token_factory: Token generator; injectable for collision tests
        """
        self.session = session
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.clock = clock
        self.settings = settings or get_settings()
        self.token_factory = token_factory
        self.directory = TenantDirectoryService(
            session, correlation_id=self.correlation_id, clock=clock
        )

    # =========================================================================
    # Core Operations
    # =========================================================================

    def create(
        self,
        email: str,
        store_id: str,
        role: str = InvitationRole.PROVEEDOR.value,
        ttl_hours: Optional[int] = None,
        invited_by: Optional[Profile] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Invitation:
        """
        Create a pending invitation for an email to join a store.

        A pending invitation for the same (email, store) that is already
        past its expiry is flipped to expired first, so it never blocks a
        fresh one.

        Args:
            email: Invitee email (case-folded before storage)
            store_id: Store the invitation grants access to
            role: "proveedor" or "locatario"
            ttl_hours: Lifetime in hours (default from settings, 72)
            invited_by: Inviting profile; None for system-issued invitations
            metadata: Free-form metadata stored with the invitation

        Returns:
            Created Invitation

        Raises:
            ValidationError: Bad email, role, TTL, or inactive store
            NotFoundError: Store does not exist
            UnauthorizedOperationError: Inviter is neither admin nor owner
            DuplicateActiveInvitationError: Pending/accepted invitation exists
        """
        try:
            email = normalize_email(email)
        except ValueError as e:
            raise ValidationError(str(e), details={"field": "email"})

        invitation_role = self._parse_role(role)
        ttl_hours = self._resolve_ttl(ttl_hours)

        store = self._get_store(store_id)
        if not store.is_active:
            raise ValidationError("Store is not active", details={"store_id": store_id})
        require_store_manager(invited_by, store, "create_invitation")

        with atomic(self.session):
            invitation = self._insert_invitation(
                email, store_id, invitation_role, ttl_hours, invited_by, metadata
            )

        logger.info(
            "Created invitation",
            extra={
                "invitation_id": invitation.id,
                "store_id": store_id,
                "email": mask_email(email),
                "role": invitation_role.value,
                "invited_by": invitation.invited_by,
            },
        )
        return invitation

    def onboard_store(
        self,
        admin: Optional[Profile],
        name: str,
        address: str,
        locatario_email: str,
        locatario_name: str = "",
        settings: Optional[Dict[str, Any]] = None,
        ttl_hours: Optional[int] = None,
    ) -> StoreOnboarding:
        """
        Create a store for a locatario and invite them to claim it.

        The placeholder owner, the store and the owner invitation are one
        transaction: if any of them fails nothing is written and the admin
        can simply retry.

        Raises:
            UnauthorizedOperationError: Actor is not an admin
            ValidationError: Bad name, email or TTL
            DuplicateStoreNameError: Name taken by another active store
            DuplicateActiveInvitationError: Owner already has a live invitation
        """
        ttl_hours = self._resolve_ttl(ttl_hours)

        with atomic(self.session):
            onboarding = self.directory.create_store_for_locatario_in_transaction(
                admin, name, address, locatario_email, locatario_name, settings
            )
            invitation = self._insert_invitation(
                onboarding.profile.email,
                onboarding.store.id,
                InvitationRole.LOCATARIO,
                ttl_hours,
                admin,
                None,
            )

        logger.info(
            "Onboarded store for locatario",
            extra={
                "store_id": onboarding.store.id,
                "locatario_id": onboarding.profile.id,
                "invitation_id": invitation.id,
            },
        )
        return StoreOnboarding(
            store=onboarding.store, profile=onboarding.profile, invitation=invitation
        )


    def validate(self, token: str) -> InvitationValidation:
        """
        Check whether a token can be accepted right now. Never mutates.

        Reasons: "not_found", "accepted", "cancelled", "expired".
        """
        invitation = self.get_by_token(token)
        if invitation is None:
            return InvitationValidation(valid=False, reason="not_found")

        if invitation.status == InvitationStatus.ACCEPTED:
            return InvitationValidation(valid=False, reason="accepted", invitation=invitation)
        if invitation.status == InvitationStatus.CANCELLED:
            return InvitationValidation(valid=False, reason="cancelled", invitation=invitation)
        if invitation.is_expired_at(self.clock()):
            return InvitationValidation(valid=False, reason="expired", invitation=invitation)

        return InvitationValidation(valid=True, invitation=invitation)

    def accept(
        self,
        token: str,
        accepting_profile: Optional[Profile] = None,
        auth_subject_id: Optional[str] = None,
    ) -> InvitationAcceptanceResult:
        """
        Accept an invitation in one transaction.

        The status flip is a conditional UPDATE (still pending AND not yet
        expired). Exactly one concurrent caller gets rowcount 1; everyone
        else fails and must not retry the same token. The association (or
        store ownership), the profile link and the audit row commit with it.

        Args:
            token: Invitation token from the accept link
            accepting_profile: Profile accepting; looked up or created by
                invitation email when omitted
            auth_subject_id: Identity provider subject to link to the profile

        Returns:
            InvitationAcceptanceResult

        Raises:
            NotFoundError: Unknown token
            InvitationNotPendingError: Already accepted or cancelled
            InvitationExpiredError: Past expiry (stored or derived)
            UnauthorizedOperationError: Profile/email/subject mismatch
        """
        invitation = self.get_by_token(token)
        if invitation is None:
            raise NotFoundError("Invitation")

        invitation_id = invitation.id
        store_id = invitation.store_id
        email = invitation.email
        role = invitation.role

        with atomic(self.session):
            now = self.clock()
            result = self.session.execute(
                update(Invitation)
                .where(
                    Invitation.id == invitation_id,
                    Invitation.status == InvitationStatus.PENDING,
                    Invitation.expires_at > now,
                )
                .values(status=InvitationStatus.ACCEPTED, accepted_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise self._acceptance_failure(invitation_id, now)

            profile = self._resolve_accepting_profile(email, role, accepting_profile)
            if auth_subject_id:
                self._link_auth_subject(profile, auth_subject_id)

            self.session.execute(
                update(Invitation)
                .where(Invitation.id == invitation_id)
                .values(accepted_by=profile.id)
                .execution_options(synchronize_session=False)
            )

            if role == InvitationRole.LOCATARIO:
                self._hand_over_store(store_id, profile)
            else:
                self.directory.upsert_association_in_transaction(
                    store_id, profile.id, None, release_claimed_brand=True
                )

            self._emit_invitation_event(
                AuditAction.INVITATION_ACCEPTED,
                invitation,
                user_id=profile.id,
                metadata={"role": role.value, "profile_id": profile.id},
            )
            profile_id = profile.id

        logger.info(
            "Accepted invitation",
            extra={
                "invitation_id": invitation_id,
                "store_id": store_id,
                "profile_id": profile_id,
                "role": role.value,
            },
        )
        return InvitationAcceptanceResult(
            success=True,
            store_id=store_id,
            invitation_id=invitation_id,
            profile_id=profile_id,
        )

    def cancel(self, invitation_id: str, actor: Optional[Profile] = None) -> Invitation:
        """
        Withdraw a pending invitation.

        Raises:
            NotFoundError: Invitation does not exist
            UnauthorizedOperationError: Actor is neither admin nor owner
            InvalidTransitionError: Invitation is not pending
        """
        invitation = self.get_invitation(invitation_id)
        require_store_manager(actor, invitation.store, "cancel_invitation")

        with atomic(self.session):
            now = self.clock()
            result = self.session.execute(
                update(Invitation)
                .where(
                    Invitation.id == invitation_id,
                    Invitation.status == InvitationStatus.PENDING,
                )
                .values(status=InvitationStatus.CANCELLED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidTransitionError(self._current_status(invitation_id).value, "cancel")
            self._emit_invitation_event(
                AuditAction.INVITATION_CANCELLED,
                invitation,
                user_id=actor.id if actor else None,
                metadata={},
            )

        logger.info(
            "Cancelled invitation",
            extra={"invitation_id": invitation_id, "cancelled_by": actor.id if actor else None},
        )
        return invitation

    def resend(
        self,
        invitation_id: str,
        actor: Optional[Profile] = None,
        ttl_hours: Optional[int] = None,
    ) -> Invitation:
        """
        Re-issue a pending or expired invitation with a new token and expiry.

        The id is kept; the previous token stops working immediately.
        metadata["resend_count"] and metadata["last_resent_at"] are updated.

        Raises:
            NotFoundError: Invitation does not exist
            UnauthorizedOperationError: Actor is neither admin nor owner
            InvalidTransitionError: Invitation is accepted or cancelled
            DuplicateActiveInvitationError: A newer active invitation exists
        """
        invitation = self.get_invitation(invitation_id)
        require_store_manager(actor, invitation.store, "resend_invitation")
        ttl_hours = self._resolve_ttl(ttl_hours)
        email = invitation.email
        store_id = invitation.store_id

        attempts = self.settings.invitation_token_attempts
        for attempt in range(1, attempts + 1):
            token = self.token_factory()
            try:
                with atomic(self.session):
                    now = self.clock()
                    metadata = dict(invitation.extra_metadata or {})
                    metadata["resend_count"] = int(metadata.get("resend_count", 0)) + 1
                    metadata["last_resent_at"] = now.isoformat()

                    result = self.session.execute(
                        update(Invitation)
                        .where(
                            Invitation.id == invitation_id,
                            Invitation.status.in_(RESENDABLE_STATUSES),
                        )
                        .values({
                            Invitation.token: token,
                            Invitation.status: InvitationStatus.PENDING,
                            Invitation.expires_at: now + timedelta(hours=ttl_hours),
                            Invitation.extra_metadata: metadata,
                            Invitation.updated_at: now,
                        })
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise InvalidTransitionError(
                            self._current_status(invitation_id).value, "resend"
                        )
                    self._emit_invitation_event(
                        AuditAction.INVITATION_RESENT,
                        invitation,
                        user_id=actor.id if actor else None,
                        metadata={"resend_count": metadata["resend_count"], "ttl_hours": ttl_hours},
                    )
            except IntegrityError:
                if self._find_active(email, store_id, exclude_id=invitation_id) is not None:
                    raise DuplicateActiveInvitationError(store_id)
                logger.warning(
                    "Invitation resend conflict, retrying with a new token",
                    extra={"invitation_id": invitation_id, "attempt": attempt},
                )
                continue

            logger.info("Resent invitation", extra={"invitation_id": invitation_id})
            self.session.refresh(invitation)
            return invitation

        raise AppError(
            code="TOKEN_GENERATION_FAILED",
            message="Could not allocate a unique invitation token",
            details={"attempts": attempts},
        )

    def cleanup_expired(self) -> int:
        """
        Flip every pending invitation past its expiry to expired.

        Safe to run concurrently with itself and with accepts: rows that
        already left pending are not matched.

        Returns:
            Number of invitations expired by this call
        """
        with atomic(self.session):
            now = self.clock()
            result = self.session.execute(
                update(Invitation)
                .where(
                    Invitation.status == InvitationStatus.PENDING,
                    Invitation.expires_at <= now,
                )
                .values(status=InvitationStatus.EXPIRED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            count = result.rowcount or 0

        logger.info("Expired stale invitations", extra={"expired_count": count})
        return count

    def count_expirable(self) -> int:
        """Pending invitations past expiry; what cleanup_expired would flip."""
        now = self.clock()
        return (
            self.session.query(func.count(Invitation.id))
            .filter(
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at <= now,
            )
            .scalar()
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def stats(self, store_id: str) -> Dict[str, int]:
        """Invitation counts per stored status for a store, plus total."""
        rows = (
            self.session.query(Invitation.status, func.count(Invitation.id))
            .filter(Invitation.store_id == store_id)
            .group_by(Invitation.status)
            .all()
        )
        counts = {status.value: 0 for status in InvitationStatus}
        for status, count in rows:
            counts[InvitationStatus(status).value] = count
        counts["total"] = sum(counts.values())
        return counts

    def get_by_token(self, token: str) -> Optional[Invitation]:
        if not token:
            return None
        return self.session.query(Invitation).filter(Invitation.token == token).first()

    def get_invitation(self, invitation_id: str) -> Invitation:
        """Get invitation by ID or raise NotFoundError."""
        invitation = self.session.query(Invitation).filter(
            Invitation.id == invitation_id
        ).first()
        if not invitation:
            raise NotFoundError("Invitation", invitation_id)
        return invitation

    def list_invitations(
        self,
        store_id: Optional[str] = None,
        status: Optional[str] = None,
        role: Optional[str] = None,
        email: Optional[str] = None,
    ) -> List[Invitation]:
        """
        List invitations, newest first.

        Args:
            store_id: Filter by store
            status: Filter by stored status
            role: Filter by granted role
            email: Filter by invitee email (case-insensitive)
        """
        query = self.session.query(Invitation)
        if store_id:
            query = query.filter(Invitation.store_id == store_id)
        if status:
            try:
                query = query.filter(Invitation.status == InvitationStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid status: {status}", details={"field": "status"})
        if role:
            query = query.filter(Invitation.role == self._parse_role(role))
        if email:
            query = query.filter(Invitation.email == email.strip().lower())
        return query.order_by(Invitation.created_at.desc(), Invitation.id).all()

    def pending_for_email(self, email: str) -> List[Invitation]:
        """Unexpired pending invitations addressed to an email, oldest first."""
        now = self.clock()
        return (
            self.session.query(Invitation)
            .filter(
                Invitation.email == email.strip().lower(),
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at > now,
            )
            .order_by(Invitation.created_at, Invitation.id)
            .all()
        )

    def is_email_invited(self, email: str, store_id: Optional[str] = None) -> bool:
        """True when the email holds an unexpired pending or accepted invitation."""
        now = self.clock()
        for invitation in self._active_invitations(email.strip().lower(), store_id):
            if not invitation.is_expired_at(now):
                return True
        return False

    def invitation_url(self, token: str) -> str:
        """Public accept link for a token."""
        return build_invitation_url(self.settings.app_base_url, token)

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _parse_role(self, role: Any) -> InvitationRole:
        try:
            return InvitationRole(role)
        except ValueError:
            raise ValidationError(f"Invalid role: {role}", details={"field": "role"})

    def _resolve_ttl(self, ttl_hours: Optional[int]) -> int:
        if ttl_hours is None:
            return self.settings.invitation_ttl_hours
        if ttl_hours <= 0:
            raise ValidationError("ttl_hours must be positive", details={"field": "ttl_hours"})
        return ttl_hours

    def _get_store(self, store_id: str) -> Store:
        store = self.session.query(Store).filter(Store.id == store_id).first()
        if not store:
            raise NotFoundError("Store", store_id)
        return store

    def _active_invitations(self, email: str, store_id: Optional[str]) -> List[Invitation]:
        query = self.session.query(Invitation).filter(
            Invitation.email == email,
            Invitation.status.in_(ACTIVE_INVITATION_STATUSES),
        )
        if store_id is not None:
            query = query.filter(Invitation.store_id == store_id)
        return query.all()

    def _find_active(
        self,
        email: str,
        store_id: str,
        exclude_id: Optional[str] = None,
    ) -> Optional[str]:
        """Id of the pending/accepted invitation for (email, store), if any."""
        query = self.session.query(Invitation.id).filter(
            Invitation.email == email,
            Invitation.store_id == store_id,
            Invitation.status.in_(ACTIVE_INVITATION_STATUSES),
        )
        if exclude_id is not None:
            query = query.filter(Invitation.id != exclude_id)
        row = query.first()
        return row[0] if row else None

    def _insert_invitation(
        self,
        email: str,
        store_id: str,
        invitation_role: InvitationRole,
        ttl_hours: int,
        invited_by: Optional[Profile],
        metadata: Optional[Dict[str, Any]],
    ) -> Invitation:
        """Insert a pending invitation inside the caller's transaction."""
        now = self.clock()
        self._expire_stale_for(email, store_id, now)
        if self._find_active(email, store_id) is not None:
            raise DuplicateActiveInvitationError(store_id)

        attempts = self.settings.invitation_token_attempts
        for attempt in range(1, attempts + 1):
            invitation = Invitation.build(
                token=self.token_factory(),
                email=email,
                store_id=store_id,
                role=invitation_role,
                now=now,
                ttl_hours=ttl_hours,
                invited_by=invited_by.id if invited_by else None,
                metadata=metadata,
            )
            savepoint = self.session.begin_nested()
            try:
                self.session.add(invitation)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                # Either a concurrent create won the (email, store) slot or
                # the token collided. Only the latter is worth retrying.
                if self._find_active(email, store_id) is not None:
                    raise DuplicateActiveInvitationError(store_id)
                logger.warning(
                    "Invitation insert conflict, retrying with a new token",
                    extra={"store_id": store_id, "attempt": attempt},
                )
                continue

            self._emit_invitation_event(
                AuditAction.INVITATION_CREATED,
                invitation,
                user_id=invitation.invited_by,
                metadata={"role": invitation_role.value, "ttl_hours": ttl_hours},
            )
            return invitation

        raise AppError(
            code="TOKEN_GENERATION_FAILED",
            message="Could not allocate a unique invitation token",
            details={"attempts": attempts},
        )

    def _expire_stale_for(self, email: str, store_id: str, now: datetime) -> int:
        result = self.session.execute(
            update(Invitation)
            .where(
                Invitation.email == email,
                Invitation.store_id == store_id,
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at <= now,
            )
            .values(status=InvitationStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(
                "Expired stale invitation before re-invite",
                extra={"store_id": store_id, "expired_count": result.rowcount},
            )
        return result.rowcount or 0

    def _current_status(self, invitation_id: str) -> InvitationStatus:
        row = (
            self.session.query(Invitation.status)
            .filter(Invitation.id == invitation_id)
            .one()
        )
        return InvitationStatus(row[0])

    def _acceptance_failure(self, invitation_id: str, now: datetime) -> AppError:
        """Explain why the guarded accept matched no row."""
        row = (
            self.session.query(Invitation.status, Invitation.expires_at)
            .filter(Invitation.id == invitation_id)
            .one()
        )
        status = InvitationStatus(row[0])
        if status == InvitationStatus.EXPIRED:
            return InvitationExpiredError()
        if status == InvitationStatus.PENDING and ensure_utc(row[1]) <= ensure_utc(now):
            return InvitationExpiredError()
        logger.info(
            "Invitation accept lost or repeated",
            extra={"invitation_id": invitation_id, "status": status.value},
        )
        return InvitationNotPendingError(status.value)

    def _resolve_accepting_profile(
        self,
        email: str,
        role: InvitationRole,
        accepting_profile: Optional[Profile],
    ) -> Profile:
        if accepting_profile is not None:
            if accepting_profile.email.lower() != email:
                raise UnauthorizedOperationError(
                    "Invitation was issued to a different email address"
                )
            profile = accepting_profile
        else:
            profile = self.session.query(Profile).filter(Profile.email == email).first()

        if profile is None:
            profile = Profile(
                name=email.split("@", 1)[0],
                email=email,
                role=GlobalRole(role.value),
                is_active=True,
            )
            self.session.add(profile)
            self.session.flush()
            logger.info(
                "Created profile on invitation acceptance",
                extra={"profile_id": profile.id, "role": role.value},
            )
            return profile

        if not profile.is_active:
            raise UnauthorizedOperationError("Profile is deactivated")
        return profile

    def _link_auth_subject(self, profile: Profile, auth_subject_id: str) -> None:
        """Attach the identity provider subject unless a different one is linked."""
        if profile.auth_subject_id == auth_subject_id:
            return
        if profile.auth_subject_id is not None:
            raise UnauthorizedOperationError("Profile is linked to a different identity")

        taken = (
            self.session.query(Profile.id)
            .filter(Profile.auth_subject_id == auth_subject_id, Profile.id != profile.id)
            .first()
        )
        if taken is not None:
            raise UnauthorizedOperationError("Identity is already linked to another profile")

        result = self.session.execute(
            update(Profile)
            .where(Profile.id == profile.id, Profile.auth_subject_id.is_(None))
            .values(auth_subject_id=auth_subject_id, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise UnauthorizedOperationError("Profile is linked to a different identity")
        set_committed_value(profile, "auth_subject_id", auth_subject_id)

    def _hand_over_store(self, store_id: str, profile: Profile) -> None:
        """Locatario acceptance: the accepting profile becomes the store owner."""
        store = self._get_store(store_id)
        previous_owner = store.locatario_id
        if profile.role == GlobalRole.PROVEEDOR:
            profile.role = GlobalRole.LOCATARIO
        store.locatario_id = profile.id
        if profile.store_id is None:
            profile.store_id = store.id
        self.session.flush()
        logger.info(
            "Store ownership handed over",
            extra={
                "store_id": store_id,
                "previous_locatario_id": previous_owner,
                "locatario_id": profile.id,
            },
        )

    # =========================================================================
    # Audit Event Emission
    # =========================================================================

    def _emit_invitation_event(
        self,
        action: AuditAction,
        invitation: Invitation,
        user_id: Optional[str],
        metadata: Dict[str, Any],
    ) -> None:
        write_audit_log_sync(
            db=self.session,
            event=AuditEvent(
                action=action,
                outcome=AuditOutcome.SUCCESS,
                store_id=invitation.store_id,
                user_id=user_id,
                correlation_id=self.correlation_id,
                resource_type="invitation",
                resource_id=invitation.id,
                source="api" if user_id else "system",
                metadata={
                    "invitation_id": invitation.id,
                    "store_id": invitation.store_id,
                    "email": invitation.email,
                    **metadata,
                },
            ),
        )
