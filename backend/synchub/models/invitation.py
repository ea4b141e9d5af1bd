"""
Invitation model for email-based store onboarding.

Lifecycle:
1. Store owner or admin creates an invitation (status=pending, 72h expiry)
2. Invitee opens {base}/invitation/accept?token=... and accepts
3. InvitationService.accept() flips pending -> accepted with a guarded
   UPDATE and writes the store association in the same transaction
4. Past-due pending invitations read as expired at once; the cleanup job
   (and a re-invite of the same email) persists the expired status

SECURITY:
- The token is a bearer credential: single use, unguessable, unique
- At most one pending/accepted invitation per (email, store), enforced by a
  partial unique index
- Only pending invitations can be accepted or cancelled; resend is limited
  to pending and expired invitations
"""

import enum
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import relationship

from synchub.db_base import Base
from synchub.models.base import JSONType, TimestampMixin, value_enum
from synchub.utils.clock import ensure_utc


class InvitationStatus(str, enum.Enum):
    """Invitation lifecycle status."""
    PENDING = "pending"       # Awaiting response
    ACCEPTED = "accepted"     # Accepted, access granted
    EXPIRED = "expired"       # expires_at passed without response
    CANCELLED = "cancelled"   # Withdrawn by the inviter


class InvitationRole(str, enum.Enum):
    """Role granted in the store upon acceptance."""
    PROVEEDOR = "proveedor"
    LOCATARIO = "locatario"


ACTIVE_INVITATION_STATUSES = (InvitationStatus.PENDING, InvitationStatus.ACCEPTED)

_ACTIVE_STATUS_PREDICATE = text("status IN ('pending', 'accepted')")


class Invitation(Base, TimestampMixin):
    """Pending or historical invitation to join a store."""

    __tablename__ = "invitations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    token = Column(
        String(128),
        nullable=False,
        unique=True,
        comment="Single-use bearer token",
    )

    email = Column(String(255), nullable=False, index=True, comment="Case-folded invitee email")

    store_id = Column(
        String(36),
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role = Column(
        value_enum(InvitationRole, "invitation_role"),
        nullable=False,
        default=InvitationRole.PROVEEDOR,
    )

    status = Column(
        value_enum(InvitationStatus, "invitation_status"),
        nullable=False,
        default=InvitationStatus.PENDING,
        index=True,
    )

    invited_by = Column(
        String(36),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
        comment="Inviting profile; NULL for system-issued invitations",
    )

    expires_at = Column(DateTime(timezone=True), nullable=False)

    accepted_at = Column(DateTime(timezone=True), nullable=True)

    accepted_by = Column(
        String(36),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )

    extra_metadata = Column("metadata", JSONType, nullable=False, default=dict)

    store = relationship("Store", lazy="joined")

    __table_args__ = (
        Index("ix_invitations_store_status", "store_id", "status"),
        Index("ix_invitations_status_expires_at", "status", "expires_at"),
        Index(
            "uq_invitations_active_email_store",
            "email",
            "store_id",
            unique=True,
            postgresql_where=_ACTIVE_STATUS_PREDICATE,
            sqlite_where=_ACTIVE_STATUS_PREDICATE,
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Invitation(id={self.id}, store_id={self.store_id}, "
            f"status={self.status.value if self.status else None})>"
        )

    def is_expired_at(self, now: datetime) -> bool:
        """True when a pending invitation is at or past its expiry."""
        if self.status == InvitationStatus.EXPIRED:
            return True
        if self.status != InvitationStatus.PENDING:
            return False
        return ensure_utc(self.expires_at) <= ensure_utc(now)

    @property
    def is_expired(self) -> bool:
        return self.is_expired_at(datetime.now(timezone.utc))

    @classmethod
    def build(
        cls,
        token: str,
        email: str,
        store_id: str,
        role: InvitationRole,
        now: datetime,
        ttl_hours: int,
        invited_by: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> "Invitation":
        """Factory for a new pending invitation."""
        return cls(
            token=token,
            email=email,
            store_id=store_id,
            role=role,
            status=InvitationStatus.PENDING,
            invited_by=invited_by,
            expires_at=now + timedelta(hours=ttl_hours),
            extra_metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
