"""
Profile model - the identity record behind every authenticated caller.

A profile may exist before its owner ever signs in: store onboarding and
invitations create placeholder profiles whose auth_subject_id stays NULL
until an invitation is accepted and the identity provider subject is
linked.
"""

import enum
import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, String

from synchub.db_base import Base
from synchub.models.base import TimestampMixin, value_enum


class GlobalRole(str, enum.Enum):
    """Platform-wide role of a profile."""
    ADMIN = "admin"
    LOCATARIO = "locatario"
    PROVEEDOR = "proveedor"


class Profile(Base, TimestampMixin):
    """Identity with a global role and optional owned store / brand."""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    auth_subject_id = Column(
        String(255),
        nullable=True,
        unique=True,
        comment="Identity provider subject; NULL until linked on acceptance",
    )
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, comment="Case-folded email")
    role = Column(
        value_enum(GlobalRole, "global_role"),
        nullable=False,
        default=GlobalRole.PROVEEDOR,
    )
    store_id = Column(
        String(36),
        ForeignKey("stores.id", ondelete="SET NULL", use_alter=True, name="fk_profiles_store_id"),
        nullable=True,
        comment="Store operated by this profile (locatarios)",
    )
    marca_id = Column(
        String(36),
        ForeignKey("marcas.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_profiles_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, role={self.role.value if self.role else None})>"

    @property
    def is_admin(self) -> bool:
        return self.role == GlobalRole.ADMIN

    @property
    def is_linked(self) -> bool:
        """True once an identity provider subject is attached."""
        return self.auth_subject_id is not None
