"""Async engine and session factory wiring."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from concierge.models.base import (
    DEFAULT_BUSY_TIMEOUT_MS,
    Base,
    create_immutability_triggers,
    register_engine_events,
)


def create_engine(
    url: str,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> AsyncEngine:
    """Create an async engine, registering SQLite pragmas when applicable."""
    engine = create_async_engine(url, echo=False)
    if engine.dialect.name == "sqlite":
        register_engine_events(engine.sync_engine, busy_timeout_ms)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_schema(engine: AsyncEngine) -> None:
    """Create all tables plus audit triggers. Alembic is the production path."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if engine.dialect.name == "sqlite":
            await conn.run_sync(create_immutability_triggers)
