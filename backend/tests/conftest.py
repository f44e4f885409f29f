"""Shared test fixtures for the concierge workflow."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from concierge.auth import StaticTokenAuthenticator
from concierge.db import create_engine, create_session_factory, init_schema
from concierge.workflow.dispatcher import CommandDispatcher
from concierge.workflow.notifications import NotificationDispatcher, RecordingChannel
from concierge.workflow.store import WorkflowStore
from concierge.workflow.types import Actor
from tests.factories import ACTORS


@pytest.fixture
async def session_factory(
    tmp_path: Path,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """File-backed SQLite with all tables and audit triggers.

    A file (not :memory:) so concurrent requests get separate connections.
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'workflow.db'}")
    await init_schema(engine)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> WorkflowStore:
    return WorkflowStore(session_factory)


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def notifier(store: WorkflowStore, channel: RecordingChannel) -> NotificationDispatcher:
    return NotificationDispatcher(store, channel)


@pytest.fixture
def shopper() -> Actor:
    return ACTORS["tok-shopper-1"]


@pytest.fixture
def other_shopper() -> Actor:
    return ACTORS["tok-shopper-2"]


@pytest.fixture
def admin() -> Actor:
    return ACTORS["tok-admin"]


@pytest.fixture
def customer() -> Actor:
    return ACTORS["tok-customer"]


@pytest.fixture
def dispatcher(store: WorkflowStore, notifier: NotificationDispatcher) -> CommandDispatcher:
    return CommandDispatcher(
        store,
        StaticTokenAuthenticator(ACTORS),
        notifier=notifier,
    )
