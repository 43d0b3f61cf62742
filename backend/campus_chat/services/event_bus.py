"""
Event Bus - provides decoupled communication between services.
Connection and delivery events are published here so they can be
observed without coupling the messaging core to any consumer.
"""

from enum import Enum
from typing import Dict, List, Callable, Any, Optional, Tuple
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class MessagingEvent(Enum):
    """Enumeration of all messaging events."""
    # Connection events
    CONNECTED = "connection.connected"
    JOINED = "connection.joined"
    DISCONNECTED = "connection.disconnected"

    # Persistence events
    MESSAGE_PERSISTED = "persist.success"
    PERSIST_FAILURE = "persist.failure"

    # Delivery events
    MESSAGE_DELIVERED = "delivery.complete"
    DELIVERY_PARTIAL_FAILURE = "delivery.partial_failure"


@dataclass
class EventData:
    """Container for event data."""
    event_type: MessagingEvent
    payload: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: Optional[str] = None


class EventBus:
    """
    Publish-subscribe hub for messaging events.
    Handlers run after the emitting call returns; a failing handler is
    logged and never affects the emitter or other handlers.
    """

    def __init__(self, max_history_size: int = 1000):
        self._subscribers: Dict[MessagingEvent, List[Tuple[int, Callable]]] = {}
        self._event_queue: asyncio.Queue = asyncio.Queue()
        self._processing_task: Optional[asyncio.Task] = None
        self._event_history: List[EventData] = []
        self._max_history_size = max_history_size

        logger.info("EventBus initialized")

    def subscribe(
        self,
        event: MessagingEvent,
        handler: Callable,
        priority: int = 0
    ) -> None:
        """
        Subscribe to an event.

        Args:
            event: The event type to subscribe to
            handler: Sync or async callback receiving the payload dict
            priority: Handler priority (higher executes first)
        """
        if event not in self._subscribers:
            self._subscribers[event] = []

        self._subscribers[event].append((priority, handler))
        self._subscribers[event].sort(key=lambda x: x[0], reverse=True)

        logger.debug(f"Subscribed handler {handler.__name__} to event {event.value}")

    def unsubscribe(self, event: MessagingEvent, handler: Callable) -> None:
        """Unsubscribe a handler from an event."""
        if event in self._subscribers:
            self._subscribers[event] = [
                (p, h) for p, h in self._subscribers[event]
                if h != handler
            ]
            logger.debug(f"Unsubscribed handler {handler.__name__} from event {event.value}")

    async def emit(
        self,
        event: MessagingEvent,
        data: Any,
        source: Optional[str] = None
    ) -> None:
        """
        Emit an event to all subscribers.

        Args:
            event: The event type to emit
            data: The event data/payload
            source: Optional source identifier
        """
        event_data = EventData(
            event_type=event,
            payload=data if isinstance(data, dict) else {"data": data},
            source=source
        )

        self._add_to_history(event_data)
        await self._event_queue.put(event_data)

        logger.debug(f"Emitted event {event.value}")

        if self._processing_task is None or self._processing_task.done():
            self._processing_task = asyncio.create_task(self._process_events())

    async def drain(self) -> None:
        """Wait until every queued event has been handed to its subscribers."""
        while self._processing_task is not None and not self._processing_task.done():
            await self._processing_task

    async def _process_events(self):
        """Process queued events."""
        while not self._event_queue.empty():
            event_data = self._event_queue.get_nowait()
            event = event_data.event_type

            for priority, handler in list(self._subscribers.get(event, [])):
                try:
                    if asyncio.iscoroutinefunction(handler):
                        await handler(event_data.payload)
                    else:
                        handler(event_data.payload)

                except Exception as e:
                    logger.error(
                        f"Error in event handler {handler.__name__} "
                        f"for event {event.value}: {e}",
                        exc_info=True
                    )

    def _add_to_history(self, event_data: EventData) -> None:
        self._event_history.append(event_data)

        if len(self._event_history) > self._max_history_size:
            self._event_history = self._event_history[-self._max_history_size:]

    def get_history(
        self,
        event_type: Optional[MessagingEvent] = None,
        limit: int = 100
    ) -> List[EventData]:
        """
        Get event history for debugging.

        Args:
            event_type: Optional filter by event type
            limit: Maximum number of events to return

        Returns:
            List of historical events, oldest first
        """
        history = self._event_history

        if event_type:
            history = [e for e in history if e.event_type == event_type]

        return history[-limit:]

    def clear_history(self) -> None:
        """Clear the event history."""
        self._event_history.clear()
        logger.info("Event history cleared")

    def get_subscriber_count(self, event: Optional[MessagingEvent] = None) -> int:
        """Get the number of subscribers for an event, or in total."""
        if event:
            return len(self._subscribers.get(event, []))
        return sum(len(handlers) for handlers in self._subscribers.values())
