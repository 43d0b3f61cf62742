"""FastAPI dependencies resolving the per-app messaging services."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from campus_chat.core.storage.database import get_db
from campus_chat.services import MessageIngestService, MessagePersistenceService


def get_ingest_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> MessageIngestService:
    """Build an ingest service around this request's database session."""
    state = request.app.state
    return MessageIngestService(
        persistence=MessagePersistenceService(db),
        dispatcher=state.dispatcher,
        room_locks=state.room_locks,
        event_bus=state.event_bus,
    )
