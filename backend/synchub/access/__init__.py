"""
Store access resolution and tenant query scoping.

Data flow: directory tables -> StoreAccessResolver -> UserStoreAccess
-> scope_for() -> apply_scope() on every tenant-owned query.
"""

from synchub.access.models import (
    BrandScope,
    BrandScopeKind,
    RoleInStore,
    UserStoreAccess,
)
from synchub.access.resolver import StoreAccessResolver
from synchub.access.scope import QueryScope, apply_scope, scope_for

__all__ = [
    "BrandScope",
    "BrandScopeKind",
    "RoleInStore",
    "UserStoreAccess",
    "StoreAccessResolver",
    "QueryScope",
    "apply_scope",
    "scope_for",
]
