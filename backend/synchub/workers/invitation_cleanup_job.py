"""
Invitation cleanup job - cron job that expires stale invitations.

Flips every pending invitation whose expires_at has passed to expired.
Delegates the actual write to InvitationService.cleanup_expired(), a single
conditional UPDATE, so the job is idempotent and safe to run alongside
accepts and alongside another instance of itself.

CONSTRAINTS:
- Operates across stores (no store scoping)
- Respects INVITATION_CLEANUP_DRY_RUN for safe rollout
- Start, completion and failure are audit-logged

Run as a cron job:
    python -m synchub.workers.invitation_cleanup_job
"""

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from synchub.config.settings import get_settings
from synchub.database.session import atomic, get_session_factory
from synchub.platform.audit import AuditAction, AuditOutcome, log_system_audit_event_sync
from synchub.services.invitation_service import InvitationService
from synchub.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)

_PHASE_EVENTS = {
    "started": (AuditAction.INVITATION_CLEANUP_STARTED, AuditOutcome.SUCCESS),
    "completed": (AuditAction.INVITATION_CLEANUP_COMPLETED, AuditOutcome.SUCCESS),
    "failed": (AuditAction.INVITATION_CLEANUP_FAILED, AuditOutcome.FAILURE),
}


@dataclass
class CleanupStats:
    """Statistics from an invitation cleanup run."""

    started_at: datetime = field(default_factory=utc_now)
    invitations_eligible: int = 0
    invitations_expired: int = 0
    dry_run: bool = False
    errors: list = field(default_factory=list)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        duration = None
        if self.completed_at:
            duration = (self.completed_at - self.started_at).total_seconds()

        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "invitations_eligible": self.invitations_eligible,
            "invitations_expired": self.invitations_expired,
            "dry_run": self.dry_run,
            "error_count": len(self.errors),
            "duration_seconds": duration,
        }


def run_cleanup(
    db_session: Session,
    dry_run: bool = False,
    clock: Clock = utc_now,
) -> CleanupStats:
    """
    Execute invitation cleanup.

    Args:
        db_session: Database session (not store-scoped)
        dry_run: If True, only count without expiring
        clock: Source of "now"

    Returns:
        CleanupStats with results
    """
    stats = CleanupStats(started_at=clock(), dry_run=dry_run)
    service = InvitationService(db_session, clock=clock)

    _log_cleanup_audit(db_session, "started", stats)

    try:
        stats.invitations_eligible = service.count_expirable()

        if stats.invitations_eligible == 0:
            logger.info("No invitations eligible for cleanup")
            stats.completed_at = clock()
            _log_cleanup_audit(db_session, "completed", stats)
            return stats

        logger.info(
            "Invitations eligible for cleanup",
            extra={"count": stats.invitations_eligible, "dry_run": dry_run},
        )

        if dry_run:
            logger.info(
                "[DRY RUN] Would expire %d invitations",
                stats.invitations_eligible,
            )
            stats.completed_at = clock()
            _log_cleanup_audit(db_session, "completed", stats)
            return stats

        # Rows accepted or expired since the count are skipped by the guard
        stats.invitations_expired = service.cleanup_expired()

        logger.info(
            "Invitation cleanup completed",
            extra={
                "eligible": stats.invitations_eligible,
                "expired": stats.invitations_expired,
            },
        )

        stats.completed_at = clock()
        _log_cleanup_audit(db_session, "completed", stats)
        return stats

    except Exception as exc:
        error_msg = f"Invitation cleanup failed: {exc}"
        stats.errors.append(error_msg)
        stats.completed_at = clock()
        logger.error(error_msg, exc_info=True)
        _log_cleanup_audit(db_session, "failed", stats)
        raise


def _log_cleanup_audit(db_session: Session, phase: str, stats: CleanupStats) -> None:
    """Audit one phase of the run. A failed write is logged, never raised."""
    action, outcome = _PHASE_EVENTS[phase]
    try:
        with atomic(db_session):
            log_system_audit_event_sync(
                db=db_session,
                action=action,
                resource_type="invitation_cleanup",
                metadata={"phase": phase, **stats.to_dict()},
                source="worker",
                outcome=outcome,
            )
    except Exception as exc:
        logger.error(
            "Could not audit invitation cleanup phase",
            extra={"phase": phase, "error": str(exc)},
        )


def main():
    """Entry point for invitation cleanup job."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    dry_run = get_settings().invitation_cleanup_dry_run
    logger.info("Invitation Cleanup Job starting", extra={"dry_run": dry_run})

    try:
        session = get_session_factory()()
    except ValueError as exc:
        logger.error("Invitation Cleanup Job misconfigured", extra={"error": str(exc)})
        sys.exit(1)

    try:
        stats = run_cleanup(session, dry_run=dry_run)
        logger.info("Invitation Cleanup Job stats", extra=stats.to_dict())
    except Exception as exc:
        logger.error(
            "Invitation Cleanup Job failed",
            extra={"error": str(exc)},
            exc_info=True,
        )
        sys.exit(1)
    finally:
        session.close()

    logger.info("Invitation Cleanup Job finished")


if __name__ == "__main__":
    main()
