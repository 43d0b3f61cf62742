"""
Message Ingest Service - coordinates persistence and live delivery.

A message is stored before anything is pushed. Storage failures abort the
submission; delivery problems never do, since the stored message is always
retrievable through history.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List
import asyncio
import logging

from campus_chat.services.connection_registry import parse_user_id, room_key_for
from campus_chat.services.delivery_dispatcher import DeliveryDispatcher, DeliveryOutcome
from campus_chat.services.event_bus import EventBus, MessagingEvent
from campus_chat.services.exceptions import InvalidArgument, PersistenceFailure
from campus_chat.services.message_persistence import MessagePersistenceService, MessageRecord

logger = logging.getLogger(__name__)


@dataclass
class _RoomLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class RoomLockTable:
    """
    One asyncio lock per room key, shared by every ingest call in the process.
    An entry lives only while some call holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[str, _RoomLock] = {}

    @asynccontextmanager
    async def hold(self, room_key: str) -> AsyncIterator[None]:
        """Hold the room's lock for the duration of the block."""
        entry = self._locks.get(room_key)
        if entry is None:
            entry = self._locks[room_key] = _RoomLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[room_key]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass(frozen=True)
class SubmitResult:
    """Persisted record plus what happened when it was pushed."""
    record: MessageRecord
    outcome: DeliveryOutcome

    @property
    def delivered(self) -> int:
        return self.outcome.delivered


class MessageIngestService:
    """
    Entry point for new messages.
    Built per request around a persistence session; the dispatcher, event
    bus and room locks are shared process-wide.
    """

    def __init__(
        self,
        persistence: MessagePersistenceService,
        dispatcher: DeliveryDispatcher,
        room_locks: RoomLockTable,
        event_bus: EventBus | None = None
    ):
        self.persistence = persistence
        self.dispatcher = dispatcher
        self.room_locks = room_locks
        self.event_bus = event_bus

    async def submit(self, sender_id: Any, recipient_id: Any, body: Any) -> SubmitResult:
        """
        Store a message and push it to the recipient's room.

        Args:
            sender_id: Sending user id
            recipient_id: Receiving user id; the target room is derived from it
            body: Non-empty message text

        Returns:
            The stored record and the delivery outcome

        Raises:
            InvalidArgument: Bad ids or empty body, nothing is stored
            PersistenceFailure: Store failed, nothing is pushed
        """
        sender_id = parse_user_id(sender_id)
        recipient_id = parse_user_id(recipient_id)
        if not isinstance(body, str) or not body.strip():
            raise InvalidArgument("Message body must not be empty")

        room_key = room_key_for(recipient_id)

        # Held across store and push so a room sees messages in submission order
        async with self.room_locks.hold(room_key):
            try:
                record = await self.persistence.insert_message(sender_id, recipient_id, body)
            except PersistenceFailure as e:
                logger.error(f"Submission from {sender_id} to {recipient_id} aborted: {e}")
                await self._emit(MessagingEvent.PERSIST_FAILURE, {
                    "sender_id": sender_id,
                    "recipient_id": recipient_id,
                    "error": e.message,
                    "timestamp": datetime.now(timezone.utc).isoformat()
                })
                raise

            await self._emit(MessagingEvent.MESSAGE_PERSISTED, record.to_payload())

            outcome = await self.dispatcher.push(room_key, record)

        logger.info(
            f"Message {record.id} submitted to {room_key}: "
            f"{outcome.delivered}/{outcome.attempted} live deliveries"
        )
        return SubmitResult(record=record, outcome=outcome)

    async def history(self, conversation_key: str) -> List[MessageRecord]:
        """All messages addressed to a room, oldest first."""
        return await self.persistence.list_messages(conversation_key)

    async def conversation(self, user_a: Any, user_b: Any) -> List[MessageRecord]:
        """Messages exchanged between two users, oldest first."""
        return await self.persistence.list_conversation(
            parse_user_id(user_a), parse_user_id(user_b)
        )

    async def _emit(self, event: MessagingEvent, payload: dict) -> None:
        if self.event_bus is not None:
            await self.event_bus.emit(event, payload, source="ingest")
