"""
Shared pytest fixtures.

Every test gets a fresh in-memory SQLite database (StaticPool, so all
sessions share one connection). Services commit their own units of work,
so nothing here relies on rolling back between tests.
"""

import itertools
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

import synchub.models  # noqa: F401
import synchub.platform.audit  # noqa: F401
from synchub.config.settings import AccessControlSettings
from synchub.database.session import create_db_engine
from synchub.db_base import Base
from synchub.models.marca import Marca
from synchub.models.product import Product
from synchub.models.profile import GlobalRole, Profile
from synchub.models.store import Store
from synchub.models.store_provider import StoreProviderAssociation
from synchub.services.invitation_service import InvitationService
from synchub.services.tenant_directory_service import TenantDirectoryService

BASE_TIME = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock for expiry tests."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def db_engine():
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return AccessControlSettings(
        database_url="sqlite:///:memory:",
        app_base_url="https://app.example.com",
        invitation_ttl_hours=72,
        invitation_token_attempts=5,
    )


@pytest.fixture
def directory(db_session, clock):
    return TenantDirectoryService(db_session, correlation_id="test-corr-directory", clock=clock)


@pytest.fixture
def invitation_service(db_session, clock, settings):
    return InvitationService(
        db_session,
        correlation_id="test-corr-invitations",
        clock=clock,
        settings=settings,
    )


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_profile(db_session):
    def _make(role=GlobalRole.PROVEEDOR, email=None, name=None, auth_subject_id=None, is_active=True):
        suffix = uuid.uuid4().hex[:8]
        profile = Profile(
            name=name or f"{role.value}-{suffix}",
            email=email or f"{role.value}-{suffix}@example.com",
            role=role,
            auth_subject_id=auth_subject_id,
            is_active=is_active,
        )
        db_session.add(profile)
        db_session.commit()
        return profile
    return _make


@pytest.fixture
def make_store(db_session):
    counter = itertools.count()

    def _make(owner, name=None, is_active=True, created_at=None):
        created = created_at or BASE_TIME - timedelta(days=30) + timedelta(minutes=next(counter))
        store = Store(
            name=name or f"Store {uuid.uuid4().hex[:6]}",
            address="Av. Providencia 1234",
            locatario_id=owner.id,
            is_active=is_active,
            settings={},
            created_at=created,
            updated_at=created,
        )
        db_session.add(store)
        db_session.commit()
        return store
    return _make


@pytest.fixture
def make_brand(db_session):
    def _make(name=None, description=None):
        brand = Marca(name=name or f"Brand {uuid.uuid4().hex[:6]}", description=description)
        db_session.add(brand)
        db_session.commit()
        return brand
    return _make


@pytest.fixture
def make_association(db_session):
    counter = itertools.count()

    def _make(store, provider, brand=None, is_active=True, invited_at=None):
        invited = invited_at or BASE_TIME - timedelta(days=10) + timedelta(minutes=next(counter))
        association = StoreProviderAssociation(
            store_id=store.id,
            provider_id=provider.id,
            marca_id=brand.id if brand else None,
            is_active=is_active,
            invited_at=invited,
        )
        db_session.add(association)
        db_session.commit()
        return association
    return _make


@pytest.fixture
def make_product(db_session):
    def _make(store, brand=None, name=None, is_active=True, provider=None):
        product = Product(
            name=name or f"Product {uuid.uuid4().hex[:6]}",
            store_id=store.id,
            marca_id=brand.id if brand else None,
            proveedor_id=provider.id if provider else None,
            price=1000,
            stock=5,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture
def admin(make_profile):
    return make_profile(role=GlobalRole.ADMIN, email="admin@example.com", name="Admin")


@pytest.fixture
def locatario(make_profile):
    return make_profile(role=GlobalRole.LOCATARIO, email="owner@example.com", name="Owner")


@pytest.fixture
def proveedor(make_profile):
    return make_profile(role=GlobalRole.PROVEEDOR, email="provider@example.com", name="Provider")


@pytest.fixture
def store(make_store, locatario):
    return make_store(locatario, name="Tienda Centro")
