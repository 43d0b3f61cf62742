"""
Message Persistence Service - handles all database operations for messages.
This is the single source of truth for message history.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_chat.models.database import Message
from campus_chat.services.connection_registry import user_id_from_room_key, parse_user_id
from campus_chat.services.exceptions import PersistenceFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageRecord:
    """Immutable persisted message."""
    id: int
    sender_id: int
    recipient_id: int
    body: str
    created_at: datetime

    @classmethod
    def from_model(cls, message: Message) -> "MessageRecord":
        created_at = message.created_at
        # SQLite drops the offset; stored values are always UTC
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            recipient_id=message.recipient_id,
            body=message.body,
            created_at=created_at,
        )

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation shared by the HTTP response and the live push."""
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "recipient_id": self.recipient_id,
            "body": self.body,
            "created_at": self.created_at.isoformat(),
        }


class MessagePersistenceService:
    """
    Responsible ONLY for database operations.
    No knowledge of WebSockets or delivery.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def insert_message(
        self,
        sender_id: int,
        recipient_id: int,
        body: str
    ) -> MessageRecord:
        """
        Atomically store a message and return the persisted record.
        The id is assigned by the store, the UTC timestamp at write time.
        """
        try:
            message = Message(
                sender_id=sender_id,
                recipient_id=recipient_id,
                body=body,
                created_at=datetime.now(timezone.utc),
            )
            self.db.add(message)
            await self.db.flush()  # Assigns the id

            record = MessageRecord.from_model(message)
            await self.db.commit()

        except SQLAlchemyError as e:
            logger.error(f"Failed to store message from {sender_id} to {recipient_id}: {e}")
            await self.db.rollback()
            raise PersistenceFailure(f"Failed to store message: {e}") from e

        # Nothing after the commit may report failure, the row is already stored
        logger.info(f"Stored message {record.id} from user {sender_id} to user {recipient_id}")
        return record

    async def list_messages(self, conversation_key: str) -> List[MessageRecord]:
        """
        Get all messages addressed to a conversation, oldest first.

        Args:
            conversation_key: Room key such as ``user_2`` or a bare user id
        """
        if isinstance(conversation_key, str) and not conversation_key.isdigit():
            recipient_id = user_id_from_room_key(conversation_key)
        else:
            recipient_id = parse_user_id(conversation_key)

        query = select(Message).where(
            Message.recipient_id == recipient_id
        ).order_by(Message.created_at, Message.id)
        return await self._fetch(query, f"conversation {conversation_key}")

    async def list_conversation(
        self,
        user_a: int,
        user_b: int,
        limit: Optional[int] = None
    ) -> List[MessageRecord]:
        """Get messages exchanged between two users in either direction, oldest first."""
        query = select(Message).where(
            or_(
                and_(Message.sender_id == user_a, Message.recipient_id == user_b),
                and_(Message.sender_id == user_b, Message.recipient_id == user_a),
            )
        ).order_by(Message.created_at, Message.id)

        if limit:
            query = query.limit(limit)

        return await self._fetch(query, f"users {user_a} and {user_b}")

    async def get_message(self, message_id: int) -> Optional[MessageRecord]:
        """Retrieve a message by ID."""
        try:
            result = await self.db.execute(
                select(Message).where(Message.id == message_id)
            )
            message = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to get message {message_id}: {e}")
            raise PersistenceFailure(f"Failed to read message {message_id}: {e}") from e

        return MessageRecord.from_model(message) if message else None

    async def _fetch(self, query, description: str) -> List[MessageRecord]:
        try:
            result = await self.db.execute(query)
            messages = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to get messages for {description}: {e}")
            raise PersistenceFailure(f"Failed to read message history: {e}") from e

        logger.debug(f"Loaded {len(messages)} messages for {description}")
        return [MessageRecord.from_model(m) for m in messages]
