"""
Audit trail for stores, brands, provider associations and invitations.

Rules:
- audit_logs is append-only; nothing in this package updates or deletes rows
- every directory mutation, invitation transition and store selection
  (allowed or denied) produces one event
- emails, tokens, addresses and credentials are masked before they are
  stored or logged
- a failed insert never fails the business operation; the event is
  emitted on the "audit.fallback" logger instead

write_audit_log_sync() only flushes. The row commits or rolls back with the
change it describes, so a rejected invitation accept leaves no trace here
beyond what the caller writes after the rollback.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from fastapi import Request
from sqlalchemy import Column, DateTime, Index, String, Text
from sqlalchemy.orm import Session

from synchub.db_base import Base
from synchub.models.base import JSONType

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("audit.fallback")

SYSTEM_STORE_ID = "system"


class AuditAction(str, Enum):
    """Auditable actions, stored as "<area>.<verb>"."""
    # Store selection
    AUTH_STORE_SELECTED = "auth.store_selected"
    AUTH_CROSS_STORE_ACCESS_ATTEMPT = "auth.cross_store_access_attempt"

    # Store directory
    STORE_CREATED = "store.created"
    STORE_UPDATED = "store.updated"
    STORE_DEACTIVATED = "store.deactivated"

    # Brands
    BRAND_CREATED = "brand.created"
    BRAND_UPDATED = "brand.updated"
    BRAND_DELETED = "brand.deleted"

    # Provider associations
    PROVIDER_ASSOCIATED = "provider.associated"
    PROVIDER_DEACTIVATED = "provider.deactivated"
    PROVIDER_REACTIVATED = "provider.reactivated"
    PROVIDER_BRAND_ASSIGNED = "provider.brand_assigned"

    # Invitations
    INVITATION_CREATED = "invitation.created"
    INVITATION_ACCEPTED = "invitation.accepted"
    INVITATION_CANCELLED = "invitation.cancelled"
    INVITATION_RESENT = "invitation.resent"
    INVITATION_EXPIRED = "invitation.expired"
    INVITATION_EMAIL_FAILED = "invitation.email_failed"

    # Invitation cleanup job
    INVITATION_CLEANUP_STARTED = "invitation_cleanup.started"
    INVITATION_CLEANUP_COMPLETED = "invitation_cleanup.completed"
    INVITATION_CLEANUP_FAILED = "invitation_cleanup.failed"


class AuditOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class PIIRedactor:
    """
    Masks sensitive keys in audit metadata.

    Keys are matched case-insensitively at any depth, including dicts
    nested in lists. Emails keep their domain so support can still tell
    which tenant an invitee belongs to; everything else becomes
    "[REDACTED]". The input is never modified.
    """

    MASKED_KEYS = frozenset({
        "email",
        "token",
        "invitation_token",
        "access_token",
        "api_key",
        "resend_api_key",
        "password",
        "secret",
        "address",
    })

    MASK = "[REDACTED]"

    @classmethod
    def redact(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: cls._redact_entry(key, value) for key, value in data.items()}
        if isinstance(data, list):
            return [cls.redact(item) for item in data]
        return data

    @classmethod
    def _redact_entry(cls, key: str, value: Any) -> Any:
        if str(key).lower() not in cls.MASKED_KEYS:
            return cls.redact(value)
        if str(key).lower() == "email" and isinstance(value, str) and "@" in value:
            return "***@" + value.rsplit("@", 1)[1]
        return cls.MASK


class AuditLog(Base):
    """Append-only audit row. store_id is "system" for job events."""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column(String(255), nullable=False, index=True)
    user_id = Column(String(255), nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    outcome = Column(String(20), nullable=False, default=AuditOutcome.SUCCESS.value)
    error_code = Column(String(50), nullable=True)
    resource_type = Column(String(100), nullable=True, index=True)
    resource_id = Column(String(255), nullable=True, index=True)
    event_metadata = Column(JSONType, nullable=False, default=dict)
    correlation_id = Column(String(36), nullable=False, index=True)
    source = Column(String(50), nullable=False, default="api")
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    timestamp = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_audit_logs_store_timestamp", "store_id", "timestamp"),
        Index("ix_audit_logs_store_action", "store_id", "action"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(action={self.action}, store_id={self.store_id}, outcome={self.outcome})>"


@dataclass
class AuditEvent:
    """One auditable fact, built by services before it is written."""
    store_id: str
    action: AuditAction
    user_id: Optional[str] = None
    outcome: AuditOutcome = AuditOutcome.SUCCESS
    error_code: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    correlation_id: Optional[str] = field(default_factory=lambda: str(uuid.uuid4()))
    source: str = "api"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Column values for AuditLog, with metadata already redacted."""
        return {
            "store_id": self.store_id,
            "user_id": self.user_id,
            "action": _enum_value(self.action),
            "outcome": _enum_value(self.outcome),
            "error_code": self.error_code,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "event_metadata": PIIRedactor.redact(self.metadata),
            "correlation_id": self.correlation_id,
            "source": self.source,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "timestamp": self.timestamp,
        }


def extract_client_info(request: Request) -> tuple[Optional[str], Optional[str]]:
    """(ip, user agent) of the caller; the first X-Forwarded-For hop wins."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip_address = forwarded.split(",", 1)[0].strip()
    elif request.client:
        ip_address = request.client.host
    else:
        ip_address = None
    return ip_address, request.headers.get("User-Agent")


def write_audit_log_sync(db: Session, event: AuditEvent) -> Optional[AuditLog]:
    """
    Add an audit event to the caller's open transaction.

    The row is written under a savepoint and not committed. If the write
    fails only the savepoint is rolled back, the event goes to the fallback
    logger and None is returned; the caller's transaction stays usable.

    Args:
        db: Session of the business operation being audited
        event: Event to record

    Returns:
        The pending AuditLog row, or None when the fallback logger was used
    """
    row = AuditLog(id=str(uuid.uuid4()), **event.to_dict())
    savepoint = db.begin_nested()
    try:
        db.add(row)
        db.flush()
        savepoint.commit()
    except Exception as e:
        _log_to_fallback(row, str(e))
        savepoint.rollback()
        return None

    logger.info(
        "Audit event recorded",
        extra={
            "audit_id": row.id,
            "action": row.action,
            "store_id": row.store_id,
            "user_id": row.user_id,
            "outcome": row.outcome,
            "correlation_id": row.correlation_id,
        },
    )
    return row


def _log_to_fallback(row: AuditLog, reason: str) -> None:
    entry = {
        "audit_id": row.id,
        "action": row.action,
        "store_id": row.store_id,
        "user_id": row.user_id,
        "outcome": row.outcome,
        "resource_type": row.resource_type,
        "resource_id": row.resource_id,
        "metadata": row.event_metadata,
        "correlation_id": row.correlation_id,
        "source": row.source,
        "timestamp": row.timestamp,
        "fallback_reason": reason,
    }
    fallback_logger.error(
        "Audit log fallback",
        extra={"audit_entry": json.dumps(entry, default=str)},
    )


def log_system_audit_event_sync(
    db: Session,
    action: AuditAction,
    store_id: str = SYSTEM_STORE_ID,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
    source: str = "system",
    outcome: AuditOutcome = AuditOutcome.SUCCESS,
    error_code: Optional[str] = None,
) -> str:
    """Record an event with no acting user (cron jobs). Returns the correlation id."""
    correlation_id = correlation_id or str(uuid.uuid4())
    write_audit_log_sync(
        db,
        AuditEvent(
            store_id=store_id,
            action=action,
            outcome=outcome,
            error_code=error_code,
            resource_type=resource_type,
            resource_id=resource_id,
            metadata=dict(metadata or {}),
            correlation_id=correlation_id,
            source=source,
        ),
    )
    return correlation_id
