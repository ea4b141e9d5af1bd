"""
Store access resolution.

accessible_stores() answers "which stores can this identity act on, and
how" straight from the directory tables:

1. Global admins: every active store, role admin, no brand restriction
2. Everyone else: the union of
   a. active stores they own (role locatario, unrestricted)
   b. active stores with an *active* provider association naming them
      (role proveedor, scoped to the association's brand)

Deduplicated by store id with ownership taking precedence. Ordering is
deterministic (owned stores by creation, then associations by invitation
time) because default store selection takes the first entry.

There is no cache here. Callers that cache must drop results on any
directory mutation.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from synchub.access.models import BrandScope, RoleInStore, UserStoreAccess
from synchub.models.profile import Profile
from synchub.models.store import Store
from synchub.models.store_provider import StoreProviderAssociation

logger = logging.getLogger(__name__)


class StoreAccessResolver:
    """Pure read-side resolver over stores and store_providers."""

    def __init__(self, session: Session):
        self.session = session

    def accessible_stores(self, profile: Profile) -> List[UserStoreAccess]:
        """
        Resolve every store the profile may access.

        Args:
            profile: Identity to resolve

        Returns:
            List of UserStoreAccess, deterministically ordered
        """
        if profile is None or not profile.is_active:
            return []

        if profile.is_admin:
            return [
                UserStoreAccess(
                    store_id=store.id,
                    store_name=store.name,
                    role_in_store=RoleInStore.ADMIN,
                    brand_scope=BrandScope.unrestricted(),
                )
                for store in self._active_stores()
            ]

        accesses: List[UserStoreAccess] = []
        seen_store_ids = set()

        for store in self._owned_stores(profile.id):
            seen_store_ids.add(store.id)
            accesses.append(UserStoreAccess(
                store_id=store.id,
                store_name=store.name,
                role_in_store=RoleInStore.LOCATARIO,
                brand_scope=BrandScope.unrestricted(),
            ))

        for association, store in self._active_associations(profile.id):
            if store.id in seen_store_ids:
                continue
            seen_store_ids.add(store.id)
            accesses.append(UserStoreAccess(
                store_id=store.id,
                store_name=store.name,
                role_in_store=RoleInStore.PROVEEDOR,
                brand_scope=BrandScope.for_provider(association.marca_id),
            ))

        logger.debug(
            "Resolved store access",
            extra={"profile_id": profile.id, "store_count": len(accesses)},
        )
        return accesses

    def access_for(self, profile: Profile, store_id: str) -> Optional[UserStoreAccess]:
        """Resolved access to one store, or None."""
        for access in self.accessible_stores(profile):
            if access.store_id == store_id:
                return access
        return None

    def can_access_store(self, profile: Profile, store_id: str) -> bool:
        return self.access_for(profile, store_id) is not None

    # =========================================================================
    # Queries
    # =========================================================================

    def _active_stores(self) -> List[Store]:
        return (
            self.session.query(Store)
            .filter(Store.is_active == True)  # noqa: E712
            .order_by(Store.created_at, Store.id)
            .populate_existing()
            .all()
        )

    def _owned_stores(self, profile_id: str) -> List[Store]:
        return (
            self.session.query(Store)
            .filter(
                Store.locatario_id == profile_id,
                Store.is_active == True,  # noqa: E712
            )
            .order_by(Store.created_at, Store.id)
            .populate_existing()
            .all()
        )

    def _active_associations(self, profile_id: str):
        return (
            self.session.query(StoreProviderAssociation, Store)
            .join(Store, Store.id == StoreProviderAssociation.store_id)
            .filter(
                StoreProviderAssociation.provider_id == profile_id,
                StoreProviderAssociation.is_active == True,  # noqa: E712
                Store.is_active == True,  # noqa: E712
            )
            .order_by(StoreProviderAssociation.invited_at, StoreProviderAssociation.store_id)
            .populate_existing()
            .all()
        )
