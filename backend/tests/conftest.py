"""Shared fixtures."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from campus_chat.core.storage.database import Database
from campus_chat.services import (
    ConnectionRegistry,
    DeliveryDispatcher,
    EventBus,
    MessageIngestService,
    MessagePersistenceService,
    MessageRecord,
    RoomLockTable,
)

MEMORY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def database():
    """Fresh in-memory database with all tables created."""
    db = Database(MEMORY_DATABASE_URL)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def db_session(database):
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def dispatcher(registry, event_bus):
    return DeliveryDispatcher(registry, event_bus=event_bus, send_timeout=0.2)


@pytest.fixture
def persistence(db_session):
    return MessagePersistenceService(db_session)


@pytest.fixture
def ingest(persistence, dispatcher, event_bus):
    return MessageIngestService(persistence, dispatcher, RoomLockTable(), event_bus)


@pytest.fixture
def connect(registry):
    """Register a connection backed by an AsyncMock send and return the mock."""
    def _connect(connection_id, *rooms):
        send = AsyncMock()
        registry.connect(connection_id, send)
        for room in rooms:
            registry.join(connection_id, room)
        return send
    return _connect


@pytest.fixture
def sample_record():
    return MessageRecord(
        id=7,
        sender_id=1,
        recipient_id=2,
        body="hello",
        created_at=datetime(2025, 3, 1, 12, 30, tzinfo=timezone.utc),
    )
