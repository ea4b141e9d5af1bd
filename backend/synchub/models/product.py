"""
Product model.

Only the columns access control cares about: the owning store, the brand
partition and the supplying provider. Catalog fields synced from the
commerce API live with the sync collaborator.
"""

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, Numeric, String

from synchub.db_base import Base
from synchub.models.base import TimestampMixin


class Product(Base, TimestampMixin):
    """Tenant-owned product row."""

    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    store_id = Column(
        String(36),
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
    )
    marca_id = Column(
        String(36),
        ForeignKey("marcas.id", ondelete="RESTRICT"),
        nullable=True,
    )
    proveedor_id = Column(
        String(36),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )
    price = Column(Numeric(12, 2), nullable=False, default=0)
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_products_store_marca", "store_id", "marca_id"),
        Index("ix_products_marca", "marca_id"),
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, store_id={self.store_id}, marca_id={self.marca_id})>"
