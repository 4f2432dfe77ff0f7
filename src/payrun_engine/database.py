"""Async engine and session factory for the payroll database."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payrun_engine.config import get_settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Engine for ``database_url`` or the configured URL; SQLite skips pool sizing."""
    url = database_url or get_settings().database_url
    options: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=10, max_overflow=20)
    return create_async_engine(url, **options)


# Process-wide engine, created on first use
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by services and the API."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Lazily create the process-wide engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = make_session_factory(_engine)
    assert _session_factory is not None
    return _engine, _session_factory


async def dispose_db() -> None:
    """Dispose the global engine (application shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables known to the ORM metadata."""
    from payrun_engine.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
