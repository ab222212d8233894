"""Database connection and session management."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payroll_orchestrator.config import get_settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


def get_engine() -> AsyncEngine:
    """Create async database engine."""
    settings = get_settings()
    if not settings.is_postgres:
        return create_async_engine(settings.database_url, echo=False)
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _engine, _session_factory


async def dispose_db() -> None:
    """Dispose the global engine (application shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def acquire_advisory_lock(conn: AsyncConnection, lock_key: str) -> bool:
    """Acquire a PostgreSQL advisory lock for a payroll period run.

    The lock belongs to the connection, so the caller must keep ``conn``
    open until release. Returns True if lock acquired, False if already
    held. Other dialects have no advisory locks and always report success.
    """
    if conn.dialect.name != "postgresql":
        return True
    result = await conn.execute(
        text("SELECT pg_try_advisory_lock(hashtext(:lock_key))"),
        {"lock_key": lock_key},
    )
    row = result.scalar()
    return bool(row)


async def release_advisory_lock(conn: AsyncConnection, lock_key: str) -> None:
    """Release advisory lock for a payroll period run."""
    if conn.dialect.name != "postgresql":
        return
    await conn.execute(
        text("SELECT pg_advisory_unlock(hashtext(:lock_key))"),
        {"lock_key": lock_key},
    )
