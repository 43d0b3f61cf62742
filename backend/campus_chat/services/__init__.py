"""
Services layer for real-time messaging.
This module separates connection tracking, live delivery and message
persistence behind small, independently testable services.
"""

from .connection_registry import ConnectionRegistry, room_key_for, parse_user_id
from .delivery_dispatcher import DeliveryDispatcher, DeliveryOutcome
from .event_bus import EventBus, MessagingEvent
from .exceptions import InvalidArgument, MessagingError, PersistenceFailure
from .message_ingest import MessageIngestService, RoomLockTable, SubmitResult
from .message_persistence import MessagePersistenceService, MessageRecord

__all__ = [
    "ConnectionRegistry",
    "room_key_for",
    "parse_user_id",
    "DeliveryDispatcher",
    "DeliveryOutcome",
    "EventBus",
    "MessagingEvent",
    "InvalidArgument",
    "MessagingError",
    "PersistenceFailure",
    "MessageIngestService",
    "RoomLockTable",
    "SubmitResult",
    "MessagePersistenceService",
    "MessageRecord",
]
