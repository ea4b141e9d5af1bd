"""
Scoped query filter.

Every query over tenant-owned rows (products, sales, anything with a store
and a brand column) goes through scope_for() + apply_scope():

| role in store | store filter                         | brand filter        |
|---------------|--------------------------------------|---------------------|
| admin         | none (or current store when scoped)  | none                |
| locatario     | current store                        | none                |
| proveedor     | current store                        | assigned brand only |

A provider without a brand assignment, or any non-admin without a current
store, gets a scope that matches zero rows. There is no path where a NULL
brand widens visibility.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy import false

from synchub.access.models import BrandScope, RoleInStore, UserStoreAccess
from synchub.models.profile import Profile
from synchub.platform.errors import UnauthorizedOperationError


@dataclass(frozen=True)
class QueryScope:
    """Filter predicate description for tenant-owned queries."""
    store_id: Optional[str]
    brand: BrandScope
    unrestricted: bool = False
    role: Optional[RoleInStore] = None

    @classmethod
    def nothing(cls, store_id: Optional[str] = None) -> "QueryScope":
        return cls(store_id=store_id, brand=BrandScope.restricted_to_none())

    @property
    def matches_nothing(self) -> bool:
        if self.unrestricted:
            return False
        return self.store_id is None or self.brand.matches_nothing

    def allows(self, store_id: Optional[str], brand_id: Optional[str]) -> bool:
        """In-memory equivalent of apply_scope for a single record."""
        if self.matches_nothing:
            return False
        if self.store_id is not None and store_id != self.store_id:
            return False
        return self.brand.allows(brand_id)

    def clauses(self, store_column, brand_column) -> List[Any]:
        """SQL criteria for the scope; works with Query.filter and Select.where."""
        if self.matches_nothing:
            return [false()]
        criteria = []
        if self.store_id is not None:
            criteria.append(store_column == self.store_id)
        if self.brand.brand_id is not None:
            criteria.append(brand_column == self.brand.brand_id)
        return criteria

    def brand_for_import(self) -> Optional[str]:
        """
        Brand to tag records created by the commerce sync.

        Returns None when the scope does not pin a brand (the importer keeps
        whatever brand the source record carries). Raises when the scope
        would hide everything it imports.
        """
        if self.matches_nothing:
            raise UnauthorizedOperationError(
                "No brand assigned in this store; imports are not permitted",
                details={"store_id": self.store_id},
            )
        return self.brand.brand_id


def scope_for(
    profile: Profile,
    current_store: Optional[UserStoreAccess],
    admin_store_scoped: bool = False,
) -> QueryScope:
    """
    Build the query scope for a profile acting in its current store.

    Args:
        profile: Acting identity
        current_store: Resolved access for the selected store, or None
        admin_store_scoped: Restrict admins to the selected store

    Returns:
        QueryScope to hand to apply_scope()
    """
    if profile is None or not profile.is_active:
        return QueryScope.nothing()

    if profile.is_admin:
        store_id = None
        if admin_store_scoped and current_store is not None:
            store_id = current_store.store_id
        return QueryScope(
            store_id=store_id,
            brand=BrandScope.unrestricted(),
            unrestricted=store_id is None,
            role=RoleInStore.ADMIN,
        )

    if current_store is None:
        return QueryScope.nothing()

    if current_store.role_in_store == RoleInStore.PROVEEDOR:
        return QueryScope(
            store_id=current_store.store_id,
            brand=current_store.brand_scope,
            role=RoleInStore.PROVEEDOR,
        )

    return QueryScope(
        store_id=current_store.store_id,
        brand=BrandScope.unrestricted(),
        role=current_store.role_in_store,
    )


def apply_scope(query, scope: QueryScope, store_column, brand_column):
    """Narrow a Query (or Select) to the rows visible under ``scope``."""
    criteria = scope.clauses(store_column, brand_column)
    if not criteria:
        return query
    if hasattr(query, "filter"):
        return query.filter(*criteria)
    return query.where(*criteria)
