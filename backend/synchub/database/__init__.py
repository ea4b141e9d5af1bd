"""Database engine, session factory and unit-of-work helpers."""

from synchub.database.session import (
    atomic,
    create_db_engine,
    get_db_session,
    get_db_session_sync,
    get_session_factory,
)

__all__ = [
    "atomic",
    "create_db_engine",
    "get_db_session",
    "get_db_session_sync",
    "get_session_factory",
]
