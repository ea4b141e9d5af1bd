"""
TenantDirectoryService for stores, brands and store/provider associations.

Handles:
- Creating stores (locatario self-service or admin onboarding)
- Updating and soft-deleting stores
- Brand catalogue (create / list with usage counts / rename / delete when unused)
- Provider associations: upsert, deactivate, reactivate, brand assignment
- Audit event emission

Association mutations are idempotent on the (store, provider) key:
deactivating twice is a no-op, re-adding flips the existing row back to
active and keeps its brand. A second row for the same pair never exists.
A brand is held by at most one active provider per store; a re-add that
would restore a brand someone else took in the meantime is rejected.
"""

import logging
import uuid
from typing import Any, Dict, List, NamedTuple, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from synchub.access.permissions import (
    require_admin,
    require_admin_or_locatario,
    require_store_manager,
)
from synchub.database.session import atomic
from synchub.models.marca import Marca
from synchub.models.product import Product
from synchub.models.profile import GlobalRole, Profile
from synchub.models.store import Store
from synchub.models.store_provider import StoreProviderAssociation
from synchub.platform.audit import (
    AuditAction,
    AuditEvent,
    AuditOutcome,
    write_audit_log_sync,
)
from synchub.platform.errors import (
    BrandInUseError,
    DuplicateStoreNameError,
    NotFoundError,
    UnauthorizedOperationError,
    ValidationError,
)
from synchub.utils.clock import Clock, utc_now
from synchub.utils.email import normalize_email

logger = logging.getLogger(__name__)

SYSTEM_STORE_ID = "system"

UPDATABLE_STORE_FIELDS = frozenset({"name", "address", "settings"})


class LocatarioStore(NamedTuple):
    """Result of admin onboarding: the new store and its owner profile."""
    store: Store
    profile: Profile


class BrandSummary(NamedTuple):
    brand: Marca
    provider_count: int
    product_count: int


class AssociationChange(NamedTuple):
    association: StoreProviderAssociation
    created: bool
    reactivated: bool


def _clean_name(value: Optional[str], label: str) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"{label} name is required", details={"field": "name"})
    return name


class TenantDirectoryService:
    """Service owning stores, brands and provider associations."""

    def __init__(
        self,
        session: Session,
        correlation_id: Optional[str] = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize service with database session.

        Args:
            session: SQLAlchemy session for database operations
            correlation_id: Optional correlation ID for audit event tracing
            clock: Source of "now"; injectable for tests
        """
        self.session = session
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.clock = clock

    # =========================================================================
    # Stores
    # =========================================================================

    def create_store(
        self,
        actor: Profile,
        name: str,
        address: str = "",
        settings: Optional[Dict[str, Any]] = None,
    ) -> Store:
        """
        Create a store owned by the acting profile.

        Args:
            actor: Admin or locatario creating the store
            name: Display name, unique (case-insensitive) among active stores
            address: Street address
            settings: Opaque per-store settings

        Returns:
            Created Store

        Raises:
            UnauthorizedOperationError: Actor is neither admin nor locatario
            ValidationError: Empty name
            DuplicateStoreNameError: Name taken by another active store
        """
        if actor is None:
            raise UnauthorizedOperationError("A store owner is required")
        require_admin_or_locatario(actor, "create_store")
        name = _clean_name(name, "Store")

        with atomic(self.session):
            store = self._insert_store(name, address, settings, owner=actor)
            if actor.role == GlobalRole.LOCATARIO and actor.store_id is None:
                actor.store_id = store.id
            self._emit_store_event(AuditAction.STORE_CREATED, store, actor, {
                "name": store.name,
                "locatario_id": store.locatario_id,
            })

        logger.info(
            "Created store",
            extra={"store_id": store.id, "locatario_id": store.locatario_id},
        )
        return store

    def create_store_for_locatario(
        self,
        actor: Optional[Profile],
        name: str,
        address: str,
        locatario_email: str,
        locatario_name: str,
        settings: Optional[Dict[str, Any]] = None,
    ) -> LocatarioStore:
        """
        Admin onboarding: create a store for a locatario who has not signed up.

        A placeholder profile (role locatario, no auth subject) owns the
        store until the locatario accepts an invitation and links it.
        An existing locatario profile with the same email is reused.

        Raises:
            UnauthorizedOperationError: Actor is not an admin
            ValidationError: Bad name/email, or email belongs to a non-locatario
            DuplicateStoreNameError: Name taken by another active store
        """
        with atomic(self.session):
            onboarding = self.create_store_for_locatario_in_transaction(
                actor, name, address, locatario_email, locatario_name, settings
            )

        logger.info(
            "Created store for locatario",
            extra={"store_id": onboarding.store.id, "locatario_id": onboarding.profile.id},
        )
        return onboarding

    def create_store_for_locatario_in_transaction(
        self,
        actor: Optional[Profile],
        name: str,
        address: str,
        locatario_email: str,
        locatario_name: str,
        settings: Optional[Dict[str, Any]] = None,
    ) -> LocatarioStore:
        """
        Onboarding without committing.

        Used by InvitationService.onboard_store so the store, its owner
        profile and the owner invitation are written together.
        """
        require_admin(actor, "create_store_for_locatario")
        name = _clean_name(name, "Store")
        try:
            email = normalize_email(locatario_email)
        except ValueError as e:
            raise ValidationError(str(e), details={"field": "locatario_email"})

        profile = self.session.query(Profile).filter(Profile.email == email).first()
        if profile is None:
            profile = Profile(
                name=(locatario_name or "").strip() or email,
                email=email,
                role=GlobalRole.LOCATARIO,
                auth_subject_id=None,
                is_active=True,
            )
            self.session.add(profile)
            self.session.flush()
        elif profile.role != GlobalRole.LOCATARIO:
            raise ValidationError(
                "Email belongs to a profile that cannot own stores",
                details={"role": profile.role.value},
            )

        store = self._insert_store(name, address, settings, owner=profile)
        if profile.store_id is None:
            profile.store_id = store.id
        self._emit_store_event(AuditAction.STORE_CREATED, store, actor, {
            "name": store.name,
            "locatario_id": profile.id,
            "placeholder_owner": not profile.is_linked,
        })
        return LocatarioStore(store=store, profile=profile)


    def update_store(self, actor: Optional[Profile], store_id: str, **fields: Any) -> Store:
        """
        Update name, address or settings of a store.

        Raises:
            NotFoundError: Store does not exist
            UnauthorizedOperationError: Actor is neither admin nor owner
            ValidationError: Unknown field or empty name
            DuplicateStoreNameError: New name taken by another active store
        """
        unknown = set(fields) - UPDATABLE_STORE_FIELDS
        if unknown:
            raise ValidationError(
                "Unsupported store fields",
                details={"fields": sorted(unknown)},
            )

        store = self.get_store(store_id)
        require_store_manager(actor, store, "update_store")

        with atomic(self.session):
            changed = []
            if "name" in fields and fields["name"] is not None:
                name = _clean_name(fields["name"], "Store")
                if name != store.name:
                    if store.is_active:
                        self._ensure_store_name_available(name, exclude_store_id=store.id)
                    store.name = name
                    changed.append("name")
            if "address" in fields and fields["address"] is not None:
                if fields["address"] != store.address:
                    store.address = fields["address"]
                    changed.append("address")
            if "settings" in fields and fields["settings"] is not None:
                store.settings = dict(fields["settings"])
                changed.append("settings")

            if changed:
                self.session.flush()
                self._emit_store_event(AuditAction.STORE_UPDATED, store, actor, {
                    "changed_fields": changed,
                })

        return store

    def deactivate_store(self, actor: Optional[Profile], store_id: str) -> bool:
        """
        Soft-delete a store. Returns False when it was already inactive.

        Deactivated stores drop out of every resolution immediately.
        """
        store = self.get_store(store_id)
        require_store_manager(actor, store, "deactivate_store")

        with atomic(self.session):
            result = self.session.execute(
                update(Store)
                .where(Store.id == store_id, Store.is_active == True)  # noqa: E712
                .values(is_active=False, updated_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            changed = result.rowcount == 1
            if changed:
                self._emit_store_event(AuditAction.STORE_DEACTIVATED, store, actor, {})

        if changed:
            logger.info("Deactivated store", extra={"store_id": store_id})
        return changed

    def get_store(self, store_id: str) -> Store:
        """Get store by ID or raise NotFoundError."""
        store = self.session.query(Store).filter(Store.id == store_id).first()
        if not store:
            raise NotFoundError("Store", store_id)
        return store

    # =========================================================================
    # Brands
    # =========================================================================

    def create_brand(
        self,
        actor: Optional[Profile],
        name: str,
        description: Optional[str] = None,
    ) -> Marca:
        """Create a brand. Names are unique."""
        require_admin_or_locatario(actor, "create_brand")
        name = _clean_name(name, "Brand")

        try:
            with atomic(self.session):
                self._ensure_brand_name_available(name)
                brand = Marca(name=name, description=description)
                self.session.add(brand)
                self.session.flush()
                self._emit_brand_event(AuditAction.BRAND_CREATED, brand, actor)
        except IntegrityError:
            raise ValidationError("Brand name already exists", details={"name": name})

        logger.info("Created brand", extra={"brand_id": brand.id})
        return brand

    def update_brand(
        self,
        actor: Optional[Profile],
        brand_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Marca:
        require_admin_or_locatario(actor, "update_brand")
        brand = self._get_brand(brand_id)

        try:
            with atomic(self.session):
                if name is not None:
                    name = _clean_name(name, "Brand")
                    if name != brand.name:
                        self._ensure_brand_name_available(name, exclude_brand_id=brand.id)
                        brand.name = name
                if description is not None:
                    brand.description = description
                self.session.flush()
                self._emit_brand_event(AuditAction.BRAND_UPDATED, brand, actor)
        except IntegrityError:
            raise ValidationError("Brand name already exists", details={"name": name})

        return brand

    def get_brand(self, actor: Optional[Profile], brand_id: str) -> Marca:
        """Get brand by ID or raise NotFoundError."""
        require_admin_or_locatario(actor, "get_brand")
        return self._get_brand(brand_id)

    def list_brands(
        self,
        actor: Optional[Profile],
        store_id: Optional[str] = None,
        search_term: Optional[str] = None,
    ) -> List[BrandSummary]:
        """
        Brands ordered by name, with active provider and product counts.

        With store_id both counts are limited to that store.
        """
        require_admin_or_locatario(actor, "list_brands")

        provider_counts = self.session.query(
            StoreProviderAssociation.marca_id.label("marca_id"),
            func.count(StoreProviderAssociation.id).label("count"),
        ).filter(
            StoreProviderAssociation.marca_id.isnot(None),
            StoreProviderAssociation.is_active == True,  # noqa: E712
        )
        product_counts = self.session.query(
            Product.marca_id.label("marca_id"),
            func.count(Product.id).label("count"),
        ).filter(Product.marca_id.isnot(None))
        if store_id is not None:
            provider_counts = provider_counts.filter(StoreProviderAssociation.store_id == store_id)
            product_counts = product_counts.filter(Product.store_id == store_id)
        providers = dict(provider_counts.group_by(StoreProviderAssociation.marca_id).all())
        products = dict(product_counts.group_by(Product.marca_id).all())

        query = self.session.query(Marca)
        if search_term:
            query = query.filter(func.lower(Marca.name).contains(search_term.strip().lower()))
        return [
            BrandSummary(
                brand=brand,
                provider_count=providers.get(brand.id, 0),
                product_count=products.get(brand.id, 0),
            )
            for brand in query.order_by(Marca.name, Marca.id).all()
        ]

    def delete_brand(self, actor: Optional[Profile], brand_id: str) -> None:
        """
        Delete a brand no product references.

        Provider associations holding the brand fall back to no brand,
        which means those providers see nothing in that store.

        Raises:
            NotFoundError: Brand does not exist
            BrandInUseError: At least one product references the brand
        """
        require_admin_or_locatario(actor, "delete_brand")
        brand = self._get_brand(brand_id)

        with atomic(self.session):
            product_count = (
                self.session.query(func.count(Product.id))
                .filter(Product.marca_id == brand_id)
                .scalar()
            )
            if product_count:
                raise BrandInUseError(brand_id, product_count)

            self.session.execute(
                update(StoreProviderAssociation)
                .where(StoreProviderAssociation.marca_id == brand_id)
                .values(marca_id=None, updated_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            self.session.execute(
                update(Profile)
                .where(Profile.marca_id == brand_id)
                .values(marca_id=None)
                .execution_options(synchronize_session=False)
            )
            self._emit_brand_event(AuditAction.BRAND_DELETED, brand, actor)
            self.session.delete(brand)

        logger.info("Deleted brand", extra={"brand_id": brand_id})

    # =========================================================================
    # Provider associations
    # =========================================================================

    def upsert_association(
        self,
        actor: Optional[Profile],
        store_id: str,
        provider_id: str,
        brand_id: Optional[str] = None,
    ) -> StoreProviderAssociation:
        """
        Create or reactivate the (store, provider) association.

        When brand_id is given it replaces the recorded brand; otherwise an
        existing brand assignment is preserved.

        Raises:
            NotFoundError: Store, provider profile or brand does not exist
            UnauthorizedOperationError: Actor is neither admin nor owner
            ValidationError: Brand already held by another provider in the store
        """
        store = self.get_store(store_id)
        require_store_manager(actor, store, "upsert_association")
        self._get_profile(provider_id)
        if brand_id is not None:
            self._get_brand(brand_id)

        with atomic(self.session):
            change = self.upsert_association_in_transaction(store_id, provider_id, brand_id)
            self._emit_association_event(
                AuditAction.PROVIDER_ASSOCIATED,
                change.association,
                actor,
                {"created": change.created, "reactivated": change.reactivated},
            )

        return change.association

    def upsert_association_in_transaction(
        self,
        store_id: str,
        provider_id: str,
        brand_id: Optional[str] = None,
        release_claimed_brand: bool = False,
    ) -> AssociationChange:
        """
        Upsert without committing or authorizing.

        Used by invitation acceptance so the association lands in the same
        transaction as the invitation status change.

        Reactivating a row restores its recorded brand only while no other
        active provider in the store holds it. Otherwise ValidationError is
        raised, or with release_claimed_brand the row comes back without a
        brand (invitation acceptance, where the invitee cannot resolve it).
        """
        if brand_id is not None:
            self._ensure_brand_unclaimed(store_id, provider_id, brand_id)

        association = self._find_association(store_id, provider_id)
        if association is None:
            association = StoreProviderAssociation(
                store_id=store_id,
                provider_id=provider_id,
                marca_id=brand_id,
                is_active=True,
                invited_at=self.clock(),
            )
            self.session.add(association)
            self.session.flush()
            logger.info(
                "Created provider association",
                extra={"store_id": store_id, "provider_id": provider_id},
            )
            return AssociationChange(association, created=True, reactivated=False)

        reactivated = not association.is_active
        if brand_id is not None:
            association.marca_id = brand_id
        elif reactivated and association.marca_id is not None:
            if release_claimed_brand and self._brand_holder(
                store_id, provider_id, association.marca_id
            ) is not None:
                logger.info(
                    "Released brand claimed by another provider on reactivation",
                    extra={
                        "store_id": store_id,
                        "provider_id": provider_id,
                        "marca_id": association.marca_id,
                    },
                )
                association.marca_id = None
            else:
                self._ensure_brand_unclaimed(store_id, provider_id, association.marca_id)
        association.is_active = True
        self.session.flush()
        logger.info(
            "Upserted provider association",
            extra={
                "store_id": store_id,
                "provider_id": provider_id,
                "reactivated": reactivated,
            },
        )
        return AssociationChange(association, created=False, reactivated=reactivated)

    def deactivate_association(
        self,
        actor: Optional[Profile],
        store_id: str,
        provider_id: str,
    ) -> bool:
        """
        Remove a provider from a store (active -> inactive).

        Returns False when the association was already inactive. The brand
        assignment is kept for a later reactivation.
        """
        return self._toggle_association(actor, store_id, provider_id, activate=False)

    def reactivate_association(
        self,
        actor: Optional[Profile],
        store_id: str,
        provider_id: str,
    ) -> bool:
        """Re-add a removed provider (inactive -> active), keeping its brand."""
        return self._toggle_association(actor, store_id, provider_id, activate=True)

    def assign_brand(
        self,
        actor: Optional[Profile],
        store_id: str,
        provider_id: str,
        brand_id: Optional[str],
    ) -> StoreProviderAssociation:
        """
        Set (or clear, with None) the brand on an existing association.

        Raises:
            NotFoundError: Association or brand does not exist
        """
        store = self.get_store(store_id)
        require_store_manager(actor, store, "assign_brand")
        if brand_id is not None:
            self._get_brand(brand_id)

        association = self._find_association(store_id, provider_id)
        if association is None:
            raise NotFoundError("Store provider association", f"{store_id}/{provider_id}")

        with atomic(self.session):
            if brand_id is not None:
                self._ensure_brand_unclaimed(store_id, provider_id, brand_id)
            previous = association.marca_id
            association.marca_id = brand_id
            self.session.flush()
            self._emit_association_event(
                AuditAction.PROVIDER_BRAND_ASSIGNED,
                association,
                actor,
                {"previous_marca_id": previous, "marca_id": brand_id},
            )

        return association

    def list_associations(
        self,
        store_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        brand_id: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[StoreProviderAssociation]:
        """List associations matching every given filter."""
        query = self.session.query(StoreProviderAssociation)
        if store_id is not None:
            query = query.filter(StoreProviderAssociation.store_id == store_id)
        if provider_id is not None:
            query = query.filter(StoreProviderAssociation.provider_id == provider_id)
        if brand_id is not None:
            query = query.filter(StoreProviderAssociation.marca_id == brand_id)
        if is_active is not None:
            query = query.filter(StoreProviderAssociation.is_active == is_active)
        return query.order_by(
            StoreProviderAssociation.invited_at, StoreProviderAssociation.id
        ).all()

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _insert_store(
        self,
        name: str,
        address: Optional[str],
        settings: Optional[Dict[str, Any]],
        owner: Profile,
    ) -> Store:
        self._ensure_store_name_available(name)
        now = self.clock()
        store = Store(
            name=name,
            address=address or "",
            locatario_id=owner.id,
            is_active=True,
            settings=dict(settings or {}),
            created_at=now,
            updated_at=now,
        )
        self.session.add(store)
        self.session.flush()
        return store

    def _ensure_store_name_available(self, name: str, exclude_store_id: Optional[str] = None) -> None:
        query = self.session.query(Store.id).filter(
            func.lower(Store.name) == name.lower(),
            Store.is_active == True,  # noqa: E712
        )
        if exclude_store_id is not None:
            query = query.filter(Store.id != exclude_store_id)
        if query.first() is not None:
            raise DuplicateStoreNameError(name)

    def _ensure_brand_name_available(self, name: str, exclude_brand_id: Optional[str] = None) -> None:
        query = self.session.query(Marca.id).filter(func.lower(Marca.name) == name.lower())
        if exclude_brand_id is not None:
            query = query.filter(Marca.id != exclude_brand_id)
        if query.first() is not None:
            raise ValidationError("Brand name already exists", details={"name": name})

    def _brand_holder(self, store_id: str, provider_id: str, brand_id: str) -> Optional[str]:
        """Another active provider in the store holding brand_id, if any."""
        row = (
            self.session.query(StoreProviderAssociation.provider_id)
            .filter(
                StoreProviderAssociation.store_id == store_id,
                StoreProviderAssociation.marca_id == brand_id,
                StoreProviderAssociation.provider_id != provider_id,
                StoreProviderAssociation.is_active == True,  # noqa: E712
            )
            .first()
        )
        return row[0] if row else None

    def _ensure_brand_unclaimed(self, store_id: str, provider_id: str, brand_id: str) -> None:
        """A brand belongs to at most one active provider per store."""
        if self._brand_holder(store_id, provider_id, brand_id) is not None:
            raise ValidationError(
                "Brand is already assigned to another provider in this store",
                details={"store_id": store_id, "brand_id": brand_id},
            )

    def _toggle_association(
        self,
        actor: Optional[Profile],
        store_id: str,
        provider_id: str,
        activate: bool,
    ) -> bool:
        operation = "reactivate_association" if activate else "deactivate_association"
        store = self.get_store(store_id)
        require_store_manager(actor, store, operation)

        association = self._find_association(store_id, provider_id)
        if association is None:
            raise NotFoundError("Store provider association", f"{store_id}/{provider_id}")

        with atomic(self.session):
            if activate and not association.is_active and association.marca_id is not None:
                self._ensure_brand_unclaimed(store_id, provider_id, association.marca_id)
            result = self.session.execute(
                update(StoreProviderAssociation)
                .where(
                    StoreProviderAssociation.id == association.id,
                    StoreProviderAssociation.is_active == (not activate),
                )
                .values(is_active=activate, updated_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            changed = result.rowcount == 1
            if changed:
                self._emit_association_event(
                    AuditAction.PROVIDER_REACTIVATED if activate else AuditAction.PROVIDER_DEACTIVATED,
                    association,
                    actor,
                    {"marca_id": association.marca_id},
                )

        logger.info(
            "Toggled provider association",
            extra={
                "store_id": store_id,
                "provider_id": provider_id,
                "is_active": activate,
                "changed": changed,
            },
        )
        return changed

    def _find_association(self, store_id: str, provider_id: str) -> Optional[StoreProviderAssociation]:
        return (
            self.session.query(StoreProviderAssociation)
            .filter(
                StoreProviderAssociation.store_id == store_id,
                StoreProviderAssociation.provider_id == provider_id,
            )
            .first()
        )

    def _get_brand(self, brand_id: str) -> Marca:
        brand = self.session.query(Marca).filter(Marca.id == brand_id).first()
        if not brand:
            raise NotFoundError("Brand", brand_id)
        return brand

    def _get_profile(self, profile_id: str) -> Profile:
        profile = self.session.query(Profile).filter(Profile.id == profile_id).first()
        if not profile:
            raise NotFoundError("Profile", profile_id)
        return profile

    # =========================================================================
    # Audit Event Emission
    # =========================================================================

    def _emit_store_event(
        self,
        action: AuditAction,
        store: Store,
        actor: Optional[Profile],
        metadata: Dict[str, Any],
    ) -> None:
        write_audit_log_sync(
            db=self.session,
            event=AuditEvent(
                action=action,
                outcome=AuditOutcome.SUCCESS,
                store_id=store.id,
                user_id=actor.id if actor else None,
                correlation_id=self.correlation_id,
                resource_type="store",
                resource_id=store.id,
                source="api" if actor else "system",
                metadata=metadata,
            ),
        )

    def _emit_brand_event(self, action: AuditAction, brand: Marca, actor: Optional[Profile]) -> None:
        write_audit_log_sync(
            db=self.session,
            event=AuditEvent(
                action=action,
                outcome=AuditOutcome.SUCCESS,
                store_id=SYSTEM_STORE_ID,
                user_id=actor.id if actor else None,
                correlation_id=self.correlation_id,
                resource_type="brand",
                resource_id=brand.id,
                source="api" if actor else "system",
                metadata={"brand_id": brand.id, "name": brand.name},
            ),
        )

    def _emit_association_event(
        self,
        action: AuditAction,
        association: StoreProviderAssociation,
        actor: Optional[Profile],
        metadata: Dict[str, Any],
    ) -> None:
        write_audit_log_sync(
            db=self.session,
            event=AuditEvent(
                action=action,
                outcome=AuditOutcome.SUCCESS,
                store_id=association.store_id,
                user_id=actor.id if actor else None,
                correlation_id=self.correlation_id,
                resource_type="store_provider",
                resource_id=association.id,
                source="api" if actor else "system",
                metadata={
                    "store_id": association.store_id,
                    "provider_id": association.provider_id,
                    **metadata,
                },
            ),
        )
