"""
Store model - the unit of tenant isolation.

Stores are soft-deleted through is_active and never hard-deleted while
associations or invitations reference them.
"""

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from synchub.db_base import Base
from synchub.models.base import JSONType, TimestampMixin


class Store(Base, TimestampMixin):
    """Retail store owned by a locatario profile."""

    __tablename__ = "stores"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=False, default="")
    locatario_id = Column(
        String(36),
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Owning locatario profile",
    )
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    settings = Column(JSONType, nullable=False, default=dict)

    locatario = relationship("Profile", foreign_keys=[locatario_id], lazy="joined")

    __table_args__ = (
        Index("ix_stores_active_created", "is_active", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Store(id={self.id}, name={self.name!r}, is_active={self.is_active})>"
