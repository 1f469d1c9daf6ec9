"""
Database Connection Management

One async engine per process. ``init_database()`` opens it, checks the
connection and brings the schema to the Alembic head; sessions come from
``get_db()`` (services) or ``get_db_dependency()`` (FastAPI).
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncGenerator, Callable, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storecache.config import get_settings
from storecache.database.schema import apply_migrations

logger = structlog.get_logger(__name__)

# Zero-argument callable yielding a commit-or-rollback session. The sync
# engines take one so tests can point them at their own database.
SessionScope = Callable[[], AsyncContextManager[AsyncSession]]

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


async def init_database() -> AsyncEngine:
    """
    Create the engine, verify connectivity and apply pending migrations.

    Raises:
        SQLAlchemyError: If the database is unreachable or a migration fails
    """
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    config = get_settings().database
    engine = create_async_engine(
        config.async_url,
        echo=config.echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if config.run_migrations:
                await conn.run_sync(apply_migrations)
    except Exception as e:
        logger.error("Database startup failed", host=config.host, error=str(e))
        await engine.dispose()
        raise

    _engine = engine
    _session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    logger.info("Database ready", host=config.host, database=config.db, migrations=config.run_migrations)
    return engine


async def close_database() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine, _session_factory = None, None


def session_scope_for(factory: async_sessionmaker[AsyncSession]) -> SessionScope:
    """
    Session scope over a factory: commit on success, roll back and re-raise
    on error, always close.
    """

    @asynccontextmanager
    async def scope() -> AsyncGenerator[AsyncSession, None]:
        session = factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.warning("Rolling back session", error_type=type(e).__name__, error=str(e))
            await session.rollback()
            raise
        finally:
            await session.close()

    return scope


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Session from the process-wide engine."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized; call init_database() first")

    async with session_scope_for(_session_factory)() as session:
        yield session


async def get_db_dependency() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency wrapping ``get_db()``."""
    async with get_db() as session:
        yield session


async def check_database_health() -> Dict[str, Any]:
    """``{"status": "healthy", "latency_ms": ...}`` or the failure reason."""
    started = time.perf_counter()
    try:
        async with get_db() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

    return {"status": "healthy", "latency_ms": round((time.perf_counter() - started) * 1000, 2)}
