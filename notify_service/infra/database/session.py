"""Database session management for the async SQLAlchemy engine.

The engine and session factory are created on first use so importing the
package never opens a connection. The notification runtime, the FastAPI
dependencies and the taskiq workers all share the same factory.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from notify_service.core.settings import get_app_settings, get_db_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Get (and lazily create) the process-wide async engine."""
    global _engine
    if _engine is None:
        db_settings = get_db_settings()
        kwargs: dict[str, Any] = {
            "echo": db_settings.echo or get_app_settings().debug,
            "pool_pre_ping": db_settings.pool_pre_ping,
        }
        if not db_settings.is_sqlite:
            kwargs.update(
                pool_size=db_settings.pool_size,
                max_overflow=db_settings.max_overflow,
                pool_timeout=db_settings.pool_timeout,
            )
        _engine = create_async_engine(db_settings.database_url, **kwargs)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the shared session factory bound to the process engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Get async database session.

    Yields:
        Database session that is automatically closed.

    Example:
        async with get_async_session() as session:
            result = await session.execute(select(Notification))
    """
    async with get_session_factory()() as session:
        yield session


async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """FastAPI dependency yielding a session that commits on success.

    Rolls back when the request handler raises.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_database(*, create_tables: bool = False) -> None:
    """Verify connectivity and optionally create tables.

    ``create_tables`` is meant for local SQLite runs; production schemas are
    managed by migrations.

    Raises:
        sqlalchemy.exc.OperationalError: If the database is unreachable.
    """
    engine = get_engine()
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))

    if create_tables:
        from notify_service.core.database.base import Base
        from notify_service.core.models import load_all_models

        load_all_models()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    logger.info(
        "Database connection established successfully",
        extra={"dialect": engine.dialect.name, "create_tables": create_tables},
    )


async def close_database() -> None:
    """Dispose the engine; called during application shutdown."""
    global _engine, _session_factory
    if _engine is None:
        return

    logger.info("Closing database connection")
    await _engine.dispose()
    _engine = None
    _session_factory = None
