"""
Tests for the invitation lifecycle.

Tests cover:
- Invitation creation (validation, duplicates, stale re-invite)
- Token validation reasons
- Acceptance (proveedor association, locatario handover, identity link)
- Cancel / resend transitions
- Expiry sweep and statistics
"""

from dataclasses import replace
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from synchub.models.invitation import Invitation, InvitationRole, InvitationStatus
from synchub.models.profile import GlobalRole, Profile
from synchub.models.store import Store
from synchub.models.store_provider import StoreProviderAssociation
from synchub.platform.audit import AuditAction, AuditLog
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
from synchub.services.invitation_service import (
    InvitationService,
    build_invitation_url,
    generate_invitation_token,
)
from synchub.utils.clock import ensure_utc


def _tokens(*values):
    """Token factory yielding fixed tokens in order."""
    iterator = iter(values)
    return lambda: next(iterator)


# =============================================================================
# Creation
# =============================================================================

class TestCreateInvitation:

    def test_creates_pending_invitation(self, invitation_service, locatario, store, clock, db_session):
        invitation = invitation_service.create(
            " Vendor@Example.COM ", store.id, invited_by=locatario
        )

        assert invitation.email == "vendor@example.com"
        assert invitation.status == InvitationStatus.PENDING
        assert invitation.role == InvitationRole.PROVEEDOR
        assert invitation.invited_by == locatario.id
        assert ensure_utc(invitation.expires_at) == clock() + timedelta(hours=72)
        assert len(invitation.token) >= 43

        audit = db_session.query(AuditLog).filter(
            AuditLog.action == AuditAction.INVITATION_CREATED.value
        ).one()
        assert audit.resource_id == invitation.id

    def test_tokens_are_unique(self, invitation_service, locatario, store):
        first = invitation_service.create("a@example.com", store.id, invited_by=locatario)
        second = invitation_service.create("b@example.com", store.id, invited_by=locatario)
        assert first.token != second.token

    @pytest.mark.parametrize("email", ["", "not-an-email", "a@b"])
    def test_invalid_email_rejected(self, invitation_service, locatario, store, email):
        with pytest.raises(ValidationError):
            invitation_service.create(email, store.id, invited_by=locatario)

    def test_invalid_role_rejected(self, invitation_service, locatario, store):
        with pytest.raises(ValidationError):
            invitation_service.create("a@example.com", store.id, role="admin", invited_by=locatario)

    def test_non_positive_ttl_rejected(self, invitation_service, locatario, store):
        with pytest.raises(ValidationError):
            invitation_service.create("a@example.com", store.id, ttl_hours=0, invited_by=locatario)

    def test_unknown_store(self, invitation_service, admin):
        with pytest.raises(NotFoundError):
            invitation_service.create("a@example.com", "missing", invited_by=admin)

    def test_inactive_store_rejected(self, invitation_service, locatario, make_store):
        closed = make_store(locatario, is_active=False)

        with pytest.raises(ValidationError):
            invitation_service.create("a@example.com", closed.id, invited_by=locatario)

    def test_proveedor_cannot_invite(self, invitation_service, proveedor, store):
        with pytest.raises(UnauthorizedOperationError):
            invitation_service.create("a@example.com", store.id, invited_by=proveedor)

    def test_duplicate_pending_rejected(self, invitation_service, locatario, store, db_session):
        invitation_service.create("a@example.com", store.id, invited_by=locatario)

        with pytest.raises(DuplicateActiveInvitationError) as exc_info:
            invitation_service.create("A@example.com", store.id, invited_by=locatario)

        assert exc_info.value.status_code == 409
        assert db_session.query(Invitation).count() == 1

    def test_same_email_other_store_allowed(self, invitation_service, locatario, store, make_store):
        other = make_store(locatario)

        invitation_service.create("a@example.com", store.id, invited_by=locatario)
        invitation_service.create("a@example.com", other.id, invited_by=locatario)

    def test_stale_pending_is_expired_on_reinvite(self, invitation_service, locatario, store, clock, db_session):
        old = invitation_service.create("a@example.com", store.id, ttl_hours=1, invited_by=locatario)
        clock.advance(hours=2)

        fresh = invitation_service.create("a@example.com", store.id, invited_by=locatario)

        db_session.refresh(old)
        assert old.status == InvitationStatus.EXPIRED
        assert fresh.status == InvitationStatus.PENDING

    def test_cancelled_does_not_block_reinvite(self, invitation_service, locatario, store):
        old = invitation_service.create("a@example.com", store.id, invited_by=locatario)
        invitation_service.cancel(old.id, actor=locatario)

        fresh = invitation_service.create("a@example.com", store.id, invited_by=locatario)

        assert fresh.id != old.id

    def test_token_collision_is_retried(self, db_session, clock, settings, locatario, store):
        service = InvitationService(
            db_session, clock=clock, settings=settings,
            token_factory=_tokens("tok-a", "tok-a", "tok-b"),
        )

        first = service.create("a@example.com", store.id, invited_by=locatario)
        second = service.create("b@example.com", store.id, invited_by=locatario)

        assert first.token == "tok-a"
        assert second.token == "tok-b"

    def test_token_attempts_exhausted(self, db_session, clock, settings, locatario, store):
        settings = replace(settings, invitation_token_attempts=2)
        service = InvitationService(
            db_session, clock=clock, settings=settings,
            token_factory=_tokens("tok-a", "tok-a", "tok-a"),
        )
        service.create("a@example.com", store.id, invited_by=locatario)

        with pytest.raises(AppError) as exc_info:
            service.create("b@example.com", store.id, invited_by=locatario)

        assert exc_info.value.code == "TOKEN_GENERATION_FAILED"

    def test_generated_tokens_are_url_safe(self):
        token = generate_invitation_token()
        assert len(token) >= 43
        assert set(token) <= set(
            "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
        )


# =============================================================================
# Admin onboarding
# =============================================================================

class TestOnboardStore:

    def test_store_owner_and_invitation_are_created(self, invitation_service, admin, db_session):
        result = invitation_service.onboard_store(
            admin, "Tienda Sur", "Av. Sur 1", "Owner2@Example.com", "Owner Two",
            settings={"currency": "CLP"},
        )

        assert result.store.locatario_id == result.profile.id
        assert result.store.settings == {"currency": "CLP"}
        assert result.profile.role == GlobalRole.LOCATARIO
        assert result.profile.auth_subject_id is None
        assert result.invitation.email == "owner2@example.com"
        assert result.invitation.role == InvitationRole.LOCATARIO
        assert result.invitation.store_id == result.store.id
        assert result.invitation.invited_by == admin.id

        actions = [row.action for row in db_session.query(AuditLog).all()]
        assert AuditAction.STORE_CREATED.value in actions
        assert AuditAction.INVITATION_CREATED.value in actions

    def test_invitation_failure_leaves_nothing_behind(self, db_session, clock, settings, admin, locatario, store):
        settings = replace(settings, invitation_token_attempts=2)
        service = InvitationService(
            db_session, clock=clock, settings=settings,
            token_factory=_tokens("tok-a", "tok-a", "tok-a"),
        )
        service.create("a@example.com", store.id, invited_by=locatario)

        with pytest.raises(AppError) as exc_info:
            service.onboard_store(admin, "Tienda Sur", "", "owner2@example.com", "Owner Two")

        assert exc_info.value.code == "TOKEN_GENERATION_FAILED"
        assert db_session.query(Store).filter(Store.name == "Tienda Sur").count() == 0
        assert db_session.query(Profile).filter(Profile.email == "owner2@example.com").count() == 0
        assert db_session.query(Invitation).count() == 1

    def test_retry_after_failure_succeeds(self, db_session, clock, settings, admin, locatario, store):
        settings = replace(settings, invitation_token_attempts=1)
        service = InvitationService(
            db_session, clock=clock, settings=settings,
            token_factory=_tokens("tok-a", "tok-a", "tok-b"),
        )
        service.create("a@example.com", store.id, invited_by=locatario)
        with pytest.raises(AppError):
            service.onboard_store(admin, "Tienda Sur", "", "owner2@example.com", "Owner Two")

        result = service.onboard_store(admin, "Tienda Sur", "", "owner2@example.com", "Owner Two")

        assert result.invitation.token == "tok-b"
        assert db_session.query(Store).filter(Store.name == "Tienda Sur").count() == 1

    def test_requires_admin(self, invitation_service, locatario, db_session):
        with pytest.raises(UnauthorizedOperationError):
            invitation_service.onboard_store(locatario, "Tienda Sur", "", "owner2@example.com", "Owner Two")

        assert db_session.query(Store).filter(Store.name == "Tienda Sur").count() == 0


# =============================================================================
# Validation and expiry
# =============================================================================

class TestValidateAndExpire:

    def test_unknown_token(self, invitation_service):
        result = invitation_service.validate("nope")
        assert result.valid is False
        assert result.reason == "not_found"

    def test_expiry_lifecycle(self, invitation_service, locatario, store, clock):
        invitation = invitation_service.create(
            "a@example.com", store.id, ttl_hours=1, invited_by=locatario
        )
        token = invitation.token

        assert invitation_service.validate(token).valid is True

        clock.advance(hours=2)
        result = invitation_service.validate(token)
        assert result.valid is False
        assert result.reason == "expired"
        # validate never writes
        assert invitation_service.get_by_token(token).status == InvitationStatus.PENDING

        assert invitation_service.count_expirable() == 1
        assert invitation_service.cleanup_expired() == 1
        assert invitation_service.cleanup_expired() == 0
        assert invitation_service.get_by_token(token).status == InvitationStatus.EXPIRED

    def test_expires_exactly_at_deadline(self, invitation_service, locatario, store, clock):
        invitation = invitation_service.create(
            "a@example.com", store.id, ttl_hours=1, invited_by=locatario
        )
        clock.advance(hours=1)

        assert invitation_service.validate(invitation.token).reason == "expired"

    def test_reasons_for_terminal_states(self, invitation_service, locatario, store):
        cancelled = invitation_service.create("a@example.com", store.id, invited_by=locatario)
        accepted = invitation_service.create("b@example.com", store.id, invited_by=locatario)
        invitation_service.cancel(cancelled.id, actor=locatario)
        invitation_service.accept(accepted.token)

        assert invitation_service.validate(cancelled.token).reason == "cancelled"
        assert invitation_service.validate(accepted.token).reason == "accepted"


# =============================================================================
# Acceptance
# =============================================================================

class TestAcceptInvitation:

    def test_unknown_token(self, invitation_service):
        with pytest.raises(NotFoundError):
            invitation_service.accept("nope")

    def test_proveedor_acceptance_creates_association(self, invitation_service, locatario, store, proveedor, db_session):
        invitation = invitation_service.create(proveedor.email, store.id, invited_by=locatario)

        result = invitation_service.accept(invitation.token, accepting_profile=proveedor)

        assert result.success is True
        assert result.store_id == store.id
        assert result.profile_id == proveedor.id

        db_session.refresh(invitation)
        assert invitation.status == InvitationStatus.ACCEPTED
        assert invitation.accepted_by == proveedor.id
        assert invitation.accepted_at is not None

        association = db_session.query(StoreProviderAssociation).one()
        assert association.provider_id == proveedor.id
        assert association.is_active is True
        assert association.marca_id is None

        assert db_session.query(AuditLog).filter(
            AuditLog.action == AuditAction.INVITATION_ACCEPTED.value
        ).count() == 1

    def test_acceptance_reactivates_removed_provider_keeping_brand(
        self, invitation_service, locatario, store, proveedor, make_brand, make_association, db_session
    ):
        brand = make_brand()
        make_association(store, proveedor, brand=brand, is_active=False)
        invitation = invitation_service.create(proveedor.email, store.id, invited_by=locatario)

        invitation_service.accept(invitation.token, accepting_profile=proveedor)

        association = db_session.query(StoreProviderAssociation).one()
        assert association.is_active is True
        assert association.marca_id == brand.id

    def test_acceptance_drops_brand_claimed_by_another_provider(
        self, invitation_service, locatario, store, proveedor, make_profile, make_brand,
        make_association, db_session
    ):
        brand = make_brand()
        returning = make_association(store, proveedor, brand=brand, is_active=False)
        holder = make_profile()
        make_association(store, holder, brand=brand)
        invitation = invitation_service.create(proveedor.email, store.id, invited_by=locatario)

        result = invitation_service.accept(invitation.token, accepting_profile=proveedor)

        assert result.success is True
        db_session.refresh(returning)
        assert returning.is_active is True
        assert returning.marca_id is None
        holders = db_session.query(StoreProviderAssociation).filter(
            StoreProviderAssociation.marca_id == brand.id,
            StoreProviderAssociation.is_active == True,  # noqa: E712
        ).all()
        assert [a.provider_id for a in holders] == [holder.id]

    def test_acceptance_creates_profile_for_new_email(self, invitation_service, locatario, store, db_session):
        invitation = invitation_service.create("new@example.com", store.id, invited_by=locatario)

        result = invitation_service.accept(invitation.token, auth_subject_id="user_123")

        profile = db_session.query(Profile).filter(Profile.id == result.profile_id).one()
        assert profile.email == "new@example.com"
        assert profile.role == GlobalRole.PROVEEDOR
        assert profile.auth_subject_id == "user_123"

    def test_locatario_acceptance_hands_over_store(self, invitation_service, admin, directory, db_session):
        onboarding = directory.create_store_for_locatario(
            admin, "Tienda Sur", "", "owner2@example.com", "Owner Two"
        )
        invitation = invitation_service.create(
            "owner2@example.com", onboarding.store.id,
            role=InvitationRole.LOCATARIO.value, invited_by=admin,
        )

        result = invitation_service.accept(invitation.token, auth_subject_id="user_owner2")

        assert result.profile_id == onboarding.profile.id
        db_session.refresh(onboarding.store)
        db_session.refresh(onboarding.profile)
        assert onboarding.store.locatario_id == onboarding.profile.id
        assert onboarding.profile.auth_subject_id == "user_owner2"
        assert db_session.query(StoreProviderAssociation).count() == 0

    def test_locatario_acceptance_promotes_proveedor(self, invitation_service, admin, store, proveedor, db_session):
        invitation = invitation_service.create(
            proveedor.email, store.id, role=InvitationRole.LOCATARIO.value, invited_by=admin
        )

        invitation_service.accept(invitation.token, accepting_profile=proveedor)

        db_session.refresh(proveedor)
        db_session.refresh(store)
        assert proveedor.role == GlobalRole.LOCATARIO
        assert store.locatario_id == proveedor.id

    def test_second_accept_is_not_pending(self, invitation_service, locatario, store, proveedor):
        invitation = invitation_service.create(proveedor.email, store.id, invited_by=locatario)
        invitation_service.accept(invitation.token, accepting_profile=proveedor)

        with pytest.raises(InvitationNotPendingError) as exc_info:
            invitation_service.accept(invitation.token, accepting_profile=proveedor)

        assert exc_info.value.details["current_status"] == "accepted"

    def test_cancelled_invitation_cannot_be_accepted(self, invitation_service, locatario, store, proveedor, db_session):
        invitation = invitation_service.create(proveedor.email, store.id, invited_by=locatario)
        invitation_service.cancel(invitation.id, actor=locatario)

        with pytest.raises(InvitationNotPendingError):
            invitation_service.accept(invitation.token, accepting_profile=proveedor)

        assert db_session.query(StoreProviderAssociation).count() == 0

    def test_expired_invitation_cannot_be_accepted(self, invitation_service, locatario, store, proveedor, clock, db_session):
        invitation = invitation_service.create(
            proveedor.email, store.id, ttl_hours=1, invited_by=locatario
        )
        clock.advance(hours=2)

        with pytest.raises(InvitationExpiredError):
            invitation_service.accept(invitation.token, accepting_profile=proveedor)

        invitation_service.cleanup_expired()
        with pytest.raises(InvitationExpiredError):
            invitation_service.accept(invitation.token, accepting_profile=proveedor)

        assert db_session.query(StoreProviderAssociation).count() == 0

    def test_email_mismatch_rolls_back(self, invitation_service, locatario, store, make_profile, db_session):
        invitation = invitation_service.create("someone@example.com", store.id, invited_by=locatario)
        intruder = make_profile()

        with pytest.raises(UnauthorizedOperationError):
            invitation_service.accept(invitation.token, accepting_profile=intruder)

        db_session.refresh(invitation)
        assert invitation.status == InvitationStatus.PENDING
        assert db_session.query(StoreProviderAssociation).count() == 0

    def test_profile_linked_to_other_identity_rejected(self, invitation_service, locatario, store, make_profile, db_session):
        linked = make_profile(email="linked@example.com", auth_subject_id="user_original")
        invitation = invitation_service.create(linked.email, store.id, invited_by=locatario)

        with pytest.raises(UnauthorizedOperationError):
            invitation_service.accept(invitation.token, auth_subject_id="user_other")

        db_session.refresh(invitation)
        assert invitation.status == InvitationStatus.PENDING

    def test_inactive_profile_rejected(self, invitation_service, locatario, store, make_profile):
        disabled = make_profile(email="disabled@example.com", is_active=False)
        invitation = invitation_service.create(disabled.email, store.id, invited_by=locatario)

        with pytest.raises(UnauthorizedOperationError):
            invitation_service.accept(invitation.token)


# =============================================================================
# Cancel / resend
# =============================================================================

class TestCancelAndResend:

    def test_cancel_pending(self, invitation_service, locatario, store, db_session):
        invitation = invitation_service.create("a@example.com", store.id, invited_by=locatario)

        invitation_service.cancel(invitation.id, actor=locatario)

        db_session.refresh(invitation)
        assert invitation.status == InvitationStatus.CANCELLED

    def test_cancel_twice_is_invalid_transition(self, invitation_service, locatario, store):
        invitation = invitation_service.create("a@example.com", store.id, invited_by=locatario)
        invitation_service.cancel(invitation.id, actor=locatario)

        with pytest.raises(InvalidTransitionError) as exc_info:
            invitation_service.cancel(invitation.id, actor=locatario)

        assert exc_info.value.current_status == "cancelled"

    def test_cancel_requires_manager(self, invitation_service, locatario, store, proveedor):
        invitation = invitation_service.create("a@example.com", store.id, invited_by=locatario)

        with pytest.raises(UnauthorizedOperationError):
            invitation_service.cancel(invitation.id, actor=proveedor)

    def test_cancel_missing(self, invitation_service, admin):
        with pytest.raises(NotFoundError):
            invitation_service.cancel("missing", actor=admin)

    def test_resend_rotates_token_and_extends_expiry(self, invitation_service, locatario, store, clock):
        invitation = invitation_service.create(
            "a@example.com", store.id, ttl_hours=1, invited_by=locatario
        )
        old_token = invitation.token
        clock.advance(hours=2)
        invitation_service.cleanup_expired()

        resent = invitation_service.resend(invitation.id, actor=locatario, ttl_hours=24)

        assert resent.id == invitation.id
        assert resent.token != old_token
        assert resent.status == InvitationStatus.PENDING
        assert resent.extra_metadata["resend_count"] == 1
        assert resent.extra_metadata["last_resent_at"] == clock().isoformat()
        assert invitation_service.validate(old_token).reason == "not_found"
        assert invitation_service.validate(resent.token).valid is True

    def test_resend_counts_accumulate(self, invitation_service, locatario, store):
        invitation = invitation_service.create("a@example.com", store.id, invited_by=locatario)

        invitation_service.resend(invitation.id, actor=locatario)
        resent = invitation_service.resend(invitation.id, actor=locatario)

        assert resent.extra_metadata["resend_count"] == 2

    def test_resend_accepted_is_invalid(self, invitation_service, locatario, store, proveedor):
        invitation = invitation_service.create(proveedor.email, store.id, invited_by=locatario)
        invitation_service.accept(invitation.token, accepting_profile=proveedor)

        with pytest.raises(InvalidTransitionError):
            invitation_service.resend(invitation.id, actor=locatario)

    def test_resend_expired_blocked_by_newer_invitation(self, invitation_service, locatario, store, clock):
        old = invitation_service.create("a@example.com", store.id, ttl_hours=1, invited_by=locatario)
        clock.advance(hours=2)
        invitation_service.create("a@example.com", store.id, invited_by=locatario)

        with pytest.raises(DuplicateActiveInvitationError):
            invitation_service.resend(old.id, actor=locatario)


# =============================================================================
# Queries
# =============================================================================

class TestInvitationQueries:

    def test_stats(self, invitation_service, locatario, store, proveedor):
        invitation_service.create("a@example.com", store.id, invited_by=locatario)
        cancelled = invitation_service.create("b@example.com", store.id, invited_by=locatario)
        accepted = invitation_service.create(proveedor.email, store.id, invited_by=locatario)
        invitation_service.cancel(cancelled.id, actor=locatario)
        invitation_service.accept(accepted.token, accepting_profile=proveedor)

        stats = invitation_service.stats(store.id)

        assert stats == {
            "pending": 1,
            "accepted": 1,
            "expired": 0,
            "cancelled": 1,
            "total": 3,
        }

    def test_list_newest_first_with_filters(self, invitation_service, locatario, store, clock):
        first = invitation_service.create("a@example.com", store.id, invited_by=locatario)
        clock.advance(minutes=5)
        second = invitation_service.create("b@example.com", store.id, invited_by=locatario)
        invitation_service.cancel(first.id, actor=locatario)

        assert [i.id for i in invitation_service.list_invitations(store_id=store.id)] == [second.id, first.id]
        assert [i.id for i in invitation_service.list_invitations(status="cancelled")] == [first.id]
        assert [i.id for i in invitation_service.list_invitations(email="B@example.com")] == [second.id]

    def test_list_invalid_status(self, invitation_service):
        with pytest.raises(ValidationError):
            invitation_service.list_invitations(status="bogus")

    def test_pending_for_email_and_is_invited(self, invitation_service, locatario, store, make_store, clock):
        other = make_store(locatario)
        invitation_service.create("a@example.com", store.id, invited_by=locatario)
        invitation_service.create("a@example.com", other.id, ttl_hours=1, invited_by=locatario)
        clock.advance(hours=2)

        pending = invitation_service.pending_for_email("A@example.com")

        assert [i.store_id for i in pending] == [store.id]
        assert invitation_service.is_email_invited("a@example.com", store.id) is True
        assert invitation_service.is_email_invited("a@example.com", other.id) is False
        assert invitation_service.is_email_invited("z@example.com") is False

    def test_invitation_url(self, invitation_service):
        url = invitation_service.invitation_url("abc+/=")

        parsed = urlparse(url)
        assert url.startswith("https://app.example.com/invitation/accept?token=")
        assert parse_qs(parsed.query)["token"] == ["abc+/="]

    def test_build_url_strips_trailing_slash(self):
        assert build_invitation_url("https://x.test/", "t") == "https://x.test/invitation/accept?token=t"
