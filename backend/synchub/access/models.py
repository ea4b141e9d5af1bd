"""
Derived access records.

Nothing here is persisted. UserStoreAccess and BrandScope are recomputed
from stores and store_providers on every resolution.

Brand scope is a closed sum type instead of a nullable brand id:
- UNRESTRICTED: every brand in the store (admins, owning locatarios)
- RESTRICTED_TO(brand_id): one brand (provider with an assignment)
- RESTRICTED_TO_NONE: nothing (provider without an assignment)

A NULL brand on a provider association maps to RESTRICTED_TO_NONE, never
to UNRESTRICTED.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class RoleInStore(str, Enum):
    """Effective role of an identity inside one store."""
    ADMIN = "admin"
    LOCATARIO = "locatario"
    PROVEEDOR = "proveedor"


class BrandScopeKind(str, Enum):
    UNRESTRICTED = "unrestricted"
    RESTRICTED_TO = "restricted_to"
    RESTRICTED_TO_NONE = "restricted_to_none"


@dataclass(frozen=True)
class BrandScope:
    """Which brands' records an identity may see inside a store."""
    kind: BrandScopeKind
    brand_id: Optional[str] = None

    def __post_init__(self):
        if self.kind == BrandScopeKind.RESTRICTED_TO and not self.brand_id:
            raise ValueError("RESTRICTED_TO scope requires a brand_id")
        if self.kind != BrandScopeKind.RESTRICTED_TO and self.brand_id is not None:
            raise ValueError(f"{self.kind.value} scope cannot carry a brand_id")

    @classmethod
    def unrestricted(cls) -> "BrandScope":
        return cls(BrandScopeKind.UNRESTRICTED)

    @classmethod
    def restricted_to(cls, brand_id: str) -> "BrandScope":
        return cls(BrandScopeKind.RESTRICTED_TO, brand_id)

    @classmethod
    def restricted_to_none(cls) -> "BrandScope":
        return cls(BrandScopeKind.RESTRICTED_TO_NONE)

    @classmethod
    def for_provider(cls, brand_id: Optional[str]) -> "BrandScope":
        """Scope for a provider association; unassigned sees nothing."""
        if brand_id is None:
            return cls.restricted_to_none()
        return cls.restricted_to(brand_id)

    @property
    def is_unrestricted(self) -> bool:
        return self.kind == BrandScopeKind.UNRESTRICTED

    @property
    def matches_nothing(self) -> bool:
        return self.kind == BrandScopeKind.RESTRICTED_TO_NONE

    def allows(self, brand_id: Optional[str]) -> bool:
        """Whether a record tagged with ``brand_id`` is visible."""
        if self.kind == BrandScopeKind.UNRESTRICTED:
            return True
        if self.kind == BrandScopeKind.RESTRICTED_TO:
            return brand_id is not None and brand_id == self.brand_id
        return False


@dataclass(frozen=True)
class UserStoreAccess:
    """One store an identity can act on, with its role and brand scope."""
    store_id: str
    store_name: str
    role_in_store: RoleInStore
    brand_scope: BrandScope

    @property
    def brand_id(self) -> Optional[str]:
        return self.brand_scope.brand_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "store_id": self.store_id,
            "store_name": self.store_name,
            "role_in_store": self.role_in_store.value,
            "marca_id": self.brand_id,
            "brand_scope": self.brand_scope.kind.value,
        }
