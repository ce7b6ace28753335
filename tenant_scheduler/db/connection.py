"""
Async SQLAlchemy engine and sessions shared by the SQL catalog store and the
SQL queue engine.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from tenant_scheduler.config import get_settings
from tenant_scheduler.errors import EngineUnavailableError
from tenant_scheduler.observability.tracing import instrument_sqlalchemy

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Process-wide engine built from settings.database_url, created lazily."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            echo=settings.log_level == "DEBUG",
            pool_pre_ping=True,
        )
        instrument_sqlalchemy(_engine.sync_engine)
    return _engine


def get_test_engine(database_url: str) -> AsyncEngine:
    """Unpooled engine for tests, usually an aiosqlite file."""
    return create_async_engine(database_url, poolclass=NullPool)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db() -> async_sessionmaker[AsyncSession]:
    """Create the shared engine and a session factory bound to it."""
    global AsyncSessionLocal
    AsyncSessionLocal = create_session_factory(get_engine())
    logger.info("Database engine ready", extra={"pool_size": get_settings().database_pool_size})
    return AsyncSessionLocal


async def close_db() -> None:
    global _engine, AsyncSessionLocal
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    AsyncSessionLocal = None
    logger.info("Database engine disposed")


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """
    Transactional session scope.

    Commits on success and rolls back on error. Database and network
    failures surface as EngineUnavailableError; the commit has completed
    (and is durable) by the time the block exits normally.
    """
    try:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database operation failed", extra={"error": str(e)})
        raise EngineUnavailableError(f"Database unavailable: {e}") from e
