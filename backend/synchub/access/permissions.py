"""
Authorization checks for directory and invitation mutations.

- create store / brands: admin or locatario
- onboard a store for a locatario: admin only
- store, association and invitation mutations: admin or the store owner

An actor of None is a trusted system context (cron jobs, internal calls)
and skips the checks.
"""

import logging
from typing import Optional

from synchub.models.profile import GlobalRole, Profile
from synchub.models.store import Store
from synchub.platform.errors import UnauthorizedOperationError

logger = logging.getLogger(__name__)


def _deny(actor: Profile, operation: str, store_id: Optional[str] = None) -> UnauthorizedOperationError:
    logger.warning(
        "Unauthorized directory operation",
        extra={
            "profile_id": actor.id,
            "role": actor.role.value if actor.role else None,
            "operation": operation,
            "store_id": store_id,
        },
    )
    return UnauthorizedOperationError(
        f"Not permitted to {operation.replace('_', ' ')}",
        details={"operation": operation},
    )


def require_active(actor: Profile, operation: str) -> None:
    if not actor.is_active:
        raise _deny(actor, operation)


def require_admin(actor: Optional[Profile], operation: str) -> None:
    if actor is None:
        return
    require_active(actor, operation)
    if not actor.is_admin:
        raise _deny(actor, operation)


def require_admin_or_locatario(actor: Optional[Profile], operation: str) -> None:
    if actor is None:
        return
    require_active(actor, operation)
    if actor.role not in (GlobalRole.ADMIN, GlobalRole.LOCATARIO):
        raise _deny(actor, operation)


def is_store_manager(actor: Profile, store: Store) -> bool:
    """Admin, or the locatario that owns the store."""
    if not actor.is_active:
        return False
    return actor.is_admin or store.locatario_id == actor.id


def require_store_manager(actor: Optional[Profile], store: Store, operation: str) -> None:
    if actor is None:
        return
    if not is_store_manager(actor, store):
        raise _deny(actor, operation, store.id)
