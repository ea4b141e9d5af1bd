"""
Database session management.

Every mutating service call runs inside atomic(): one transaction that
commits when the block exits cleanly and rolls back on any exception.
Invitation acceptance relies on this so the invitation status change and
the store association write land together or not at all.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import HTTPException, status
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from synchub.config.settings import get_settings, normalize_database_url

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def create_db_engine(database_url: str) -> Engine:
    """Create an engine for the given URL."""
    database_url = normalize_database_url(database_url)

    if database_url.startswith("sqlite"):
        if ":memory:" in database_url:
            return create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    return create_engine(database_url, pool_pre_ping=True)


def get_session_factory() -> sessionmaker:
    """Lazily build the process-wide session factory from DATABASE_URL."""
    global _engine, _session_factory
    if _session_factory is None:
        database_url = get_settings().database_url
        if not database_url:
            raise ValueError("DATABASE_URL environment variable is required")
        _engine = create_db_engine(database_url)
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _session_factory


def get_db_session_sync() -> Iterator[Session]:
    """Yield a session outside FastAPI's dependency system."""
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


def get_db_session() -> Iterator[Session]:
    """FastAPI dependency yielding a request-scoped session."""
    try:
        factory = get_session_factory()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )

    session = factory()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Run the block as a single transaction on ``session``."""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
