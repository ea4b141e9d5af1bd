"""
Tests for StoreContextSession.

Tests cover:
- Default selection (first accessible store)
- Selecting an accessible store
- Denied selection raises and is audited
- Re-resolution and fallback when access is revoked
"""

import pytest

from synchub.access.models import RoleInStore
from synchub.platform.audit import AuditAction, AuditLog, AuditOutcome
from synchub.platform.errors import StoreAccessDeniedError
from synchub.services.store_context_service import StoreContextService, StoreContextSession


@pytest.fixture
def provider_stores(locatario, proveedor, make_store, make_brand, make_association):
    """S1 (brand A) and S2 (no brand) for the provider, in that order."""
    s1 = make_store(locatario, name="S1")
    s2 = make_store(locatario, name="S2")
    brand = make_brand(name="Marca A")
    make_association(s1, proveedor, brand=brand)
    make_association(s2, proveedor)
    return s1, s2, brand


def _context(db_session, profile, selected_store_id=None):
    return StoreContextService(db_session, correlation_id="ctx-test").for_profile(
        profile, selected_store_id=selected_store_id, ip_address="10.0.0.1", user_agent="pytest"
    )


class TestDefaultSelection:

    def test_defaults_to_first_accessible_store(self, db_session, proveedor, provider_stores):
        s1, _, brand = provider_stores
        context = _context(db_session, proveedor)

        current = context.current()

        assert current.store_id == s1.id
        assert current.brand_id == brand.id
        assert context.selected_store_id == s1.id
        assert context.default_selection() == s1.id

    def test_no_accessible_store(self, db_session, make_profile):
        context = _context(db_session, make_profile())

        assert context.current() is None
        assert context.selected_store_id is None
        assert context.default_selection() is None


class TestSelect:

    def test_select_accessible_store(self, db_session, proveedor, provider_stores):
        _, s2, _ = provider_stores
        context = _context(db_session, proveedor)

        access = context.select(s2.id)

        assert access.store_id == s2.id
        assert access.role_in_store == RoleInStore.PROVEEDOR
        assert access.brand_id is None
        assert context.current().store_id == s2.id

        audit = db_session.query(AuditLog).filter(
            AuditLog.action == AuditAction.AUTH_STORE_SELECTED.value
        ).one()
        assert audit.store_id == s2.id
        assert audit.user_id == proveedor.id
        assert audit.ip_address == "10.0.0.1"

    def test_select_inaccessible_store_is_denied_and_audited(self, db_session, proveedor, provider_stores, locatario, make_store):
        foreign = make_store(locatario, name="Foreign")
        context = _context(db_session, proveedor)
        context.current()

        with pytest.raises(StoreAccessDeniedError) as exc_info:
            context.select(foreign.id)

        assert exc_info.value.status_code == 403
        assert context.selected_store_id == provider_stores[0].id

        audit = db_session.query(AuditLog).filter(
            AuditLog.action == AuditAction.AUTH_CROSS_STORE_ACCESS_ATTEMPT.value
        ).one()
        assert audit.outcome == AuditOutcome.DENIED.value
        assert audit.resource_id == foreign.id

    def test_select_unknown_store_is_denied(self, db_session, proveedor, provider_stores):
        with pytest.raises(StoreAccessDeniedError):
            _context(db_session, proveedor).select("does-not-exist")

    def test_admin_can_select_any_active_store(self, db_session, admin, store):
        access = _context(db_session, admin).select(store.id)
        assert access.role_in_store == RoleInStore.ADMIN


class TestRevocation:

    def test_falls_back_when_association_removed(self, db_session, directory, locatario, proveedor, provider_stores):
        s1, s2, _ = provider_stores
        context = _context(db_session, proveedor, selected_store_id=s1.id)
        assert context.current().store_id == s1.id

        directory.deactivate_association(locatario, s1.id, proveedor.id)

        assert context.current().store_id == s2.id
        assert context.selected_store_id == s2.id

    def test_clears_selection_when_nothing_left(self, db_session, directory, locatario, proveedor, provider_stores):
        s1, s2, _ = provider_stores
        context = _context(db_session, proveedor, selected_store_id=s2.id)

        directory.deactivate_store(locatario, s1.id)
        directory.deactivate_store(locatario, s2.id)

        assert context.current() is None
        assert context.selected_store_id is None

    def test_stale_client_selection_is_not_trusted(self, db_session, proveedor, provider_stores, locatario, make_store):
        foreign = make_store(locatario, name="Foreign")
        context = StoreContextSession(db_session, proveedor, selected_store_id=foreign.id)

        assert context.current().store_id == provider_stores[0].id

    def test_brand_change_is_visible_on_next_read(self, db_session, directory, locatario, proveedor, provider_stores, make_brand):
        _, s2, _ = provider_stores
        context = _context(db_session, proveedor, selected_store_id=s2.id)
        assert context.current().brand_id is None

        brand = make_brand(name="Marca B")
        directory.assign_brand(locatario, s2.id, proveedor.id, brand.id)

        assert context.current().brand_id == brand.id
