"""Marca (brand) model. Brands are global; stores scope them per provider."""

import uuid

from sqlalchemy import Column, String, Text

from synchub.db_base import Base
from synchub.models.base import TimestampMixin


class Marca(Base, TimestampMixin):
    """Product-ownership partition assigned to providers per store."""

    __tablename__ = "marcas"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Marca(id={self.id}, name={self.name!r})>"
