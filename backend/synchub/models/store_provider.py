"""
StoreProviderAssociation model.

One row per (store, provider) pair, ever. Removing a provider flips
is_active to false and re-adding flips it back, so the brand assignment
survives the round trip. This row is the only place a provider's brand
scope inside a store is recorded.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import relationship

from synchub.db_base import Base
from synchub.models.base import TimestampMixin


class StoreProviderAssociation(Base, TimestampMixin):
    """Grants a provider profile access to a store, optionally scoped to a brand."""

    __tablename__ = "store_providers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column(
        String(36),
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
    )
    provider_id = Column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    marca_id = Column(
        String(36),
        ForeignKey("marcas.id", ondelete="SET NULL"),
        nullable=True,
        comment="Brand the provider sees in this store; NULL sees nothing",
    )
    is_active = Column(Boolean, nullable=False, default=True)
    invited_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    store = relationship("Store", lazy="joined")
    marca = relationship("Marca", lazy="joined")

    __table_args__ = (
        UniqueConstraint("store_id", "provider_id", name="uq_store_providers_store_provider"),
        Index("ix_store_providers_provider_active", "provider_id", "is_active"),
    )

    def __repr__(self) -> str:
        return (
            f"<StoreProviderAssociation(store_id={self.store_id}, "
            f"provider_id={self.provider_id}, marca_id={self.marca_id}, "
            f"is_active={self.is_active})>"
        )
