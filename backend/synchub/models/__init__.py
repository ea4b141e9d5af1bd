"""
Database models for stores, brands, providers and invitations.

Importing this package registers every domain table on Base.metadata;
the audit_logs table lives in synchub.platform.audit.
"""

from synchub.models.base import TimestampMixin, JSONType
from synchub.models.profile import Profile, GlobalRole
from synchub.models.store import Store
from synchub.models.marca import Marca
from synchub.models.product import Product
from synchub.models.store_provider import StoreProviderAssociation
from synchub.models.invitation import (
    Invitation,
    InvitationStatus,
    InvitationRole,
    ACTIVE_INVITATION_STATUSES,
)

__all__ = [
    "TimestampMixin",
    "JSONType",
    "Profile",
    "GlobalRole",
    "Store",
    "Marca",
    "Product",
    "StoreProviderAssociation",
    "Invitation",
    "InvitationStatus",
    "InvitationRole",
    "ACTIVE_INVITATION_STATUSES",
]
