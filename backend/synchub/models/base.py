"""
Shared model mixins and column types.

Enum columns persist the enum *value* ("pending", "proveedor") rather than
the member name so raw SQL, partial indexes and reporting read naturally.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def value_enum(enum_cls, name: str) -> SAEnum:
    """SQLAlchemy Enum type that stores member values."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=32,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """created_at / updated_at columns maintained by SQLAlchemy."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        comment="Row creation time",
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        comment="Last modification time",
    )
