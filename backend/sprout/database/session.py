"""
Engine and session factory.

One engine per process, created lazily from DATABASE_URL. The same
session factory backs the FastAPI dependency and the database-backed
account/entitlement sources used by the reconciliation core.

Usage:
    from sprout.database.session import get_db_session

    @router.get("/api/account/status")
    async def account_status(db: Session = Depends(get_db_session)):
        ...
"""

import logging
from typing import Generator, Optional

from fastapi import HTTPException, status
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from sprout.config.settings import get_settings

logger = logging.getLogger(__name__)


class DatabaseNotConfiguredError(RuntimeError):
    """DATABASE_URL is missing."""


_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url:
            # Resolver reads run in worker threads; in-memory SQLite must share one connection
            options["poolclass"] = StaticPool
        return create_engine(database_url, **options)
    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


def get_engine() -> Engine:
    """
    Get or create the process engine.

    Raises:
        DatabaseNotConfiguredError: DATABASE_URL is not set
    """
    global _engine
    if _engine is None:
        database_url = get_settings().database_url
        if not database_url:
            raise DatabaseNotConfiguredError("DATABASE_URL is not set")
        _engine = _build_engine(database_url)
        logger.info(
            "Database engine created",
            extra={"dialect": _engine.dialect.name},
        )
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory


def reset_engine() -> None:
    """Dispose the cached engine so the next call rebuilds it from settings."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


async def get_db_session() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    Raises HTTP 503 if the database is not configured.
    """
    try:
        factory = get_session_factory()
    except DatabaseNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )

    session = factory()
    try:
        yield session
    finally:
        session.close()
