"""
Delivery Dispatcher - pushes persisted messages to live room members.

Delivery is best effort: each connection gets at most one attempt per push,
failures and stalls are counted, never raised. Anyone who misses a push
reads the message from history instead.
"""

from dataclasses import dataclass, field
from typing import List, Optional
import asyncio
import logging

from campus_chat.services.connection_registry import ConnectionRegistry
from campus_chat.services.event_bus import EventBus, MessagingEvent
from campus_chat.services.message_persistence import MessageRecord

logger = logging.getLogger(__name__)

PUSH_EVENT_TYPE = "new_message"


@dataclass
class DeliveryOutcome:
    """Result of one push. Not persisted."""
    room_key: str
    message_id: int
    attempted: int = 0
    delivered: int = 0
    failed: List[str] = field(default_factory=list)
    timed_out: List[str] = field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        """Some, but not necessarily all, subscribers missed the push."""
        return self.delivered < self.attempted

    def to_dict(self) -> dict:
        return {
            "room_key": self.room_key,
            "message_id": self.message_id,
            "attempted": self.attempted,
            "delivered": self.delivered,
            "failed": list(self.failed),
            "timed_out": list(self.timed_out),
        }


class DeliveryDispatcher:
    """
    Fans a message out to every connection currently joined to a room.
    Reads the registry, never mutates it.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        event_bus: Optional[EventBus] = None,
        send_timeout: float = 5.0
    ):
        """
        Args:
            registry: Source of room memberships and transmit handles
            event_bus: Optional bus for delivery events
            send_timeout: Seconds before a stalled transmission is abandoned
        """
        self.registry = registry
        self.event_bus = event_bus
        self.send_timeout = send_timeout

    async def push(self, room_key: str, message: MessageRecord) -> DeliveryOutcome:
        """
        Transmit a message to all members of a room concurrently.

        Returns:
            Outcome with the number of successful transmissions (0 is valid)
        """
        outcome = DeliveryOutcome(room_key=room_key, message_id=message.id)
        members = sorted(self.registry.members_of(room_key))
        if not members:
            logger.info(f"No live subscribers in room {room_key} for message {message.id}")
            await self._emit_outcome(outcome)
            return outcome

        frame = {"type": PUSH_EVENT_TYPE, "message": message.to_payload()}
        outcome.attempted = len(members)

        results = await asyncio.gather(
            *[self._safe_send(connection_id, frame) for connection_id in members],
            return_exceptions=True
        )

        for connection_id, result in zip(members, results):
            if result is True:
                outcome.delivered += 1
            elif result == "timeout":
                outcome.timed_out.append(connection_id)
            else:
                outcome.failed.append(connection_id)

        if outcome.partial_failure:
            logger.warning(
                f"Message {message.id} reached {outcome.delivered}/{outcome.attempted} "
                f"connections in room {room_key} "
                f"(failed={outcome.failed}, timed_out={outcome.timed_out})"
            )
        else:
            logger.info(f"Message {message.id} pushed to {outcome.delivered} connections in room {room_key}")

        if outcome.timed_out:
            # Stalled sockets stay members until they disconnect
            logger.warning(
                f"Room {room_key} still lists stalled connections {outcome.timed_out}; "
                f"each push to it can take up to {self.send_timeout}s until they disconnect"
            )

        await self._emit_outcome(outcome)
        return outcome

    async def _safe_send(self, connection_id: str, frame: dict):
        """Send to one connection. Returns True, ``"timeout"`` or False."""
        connection = self.registry.get_connection(connection_id)
        if connection is None:
            # Disconnected between the membership snapshot and the send
            return False

        try:
            await asyncio.wait_for(connection.send(frame), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Push to connection {connection_id} timed out after {self.send_timeout}s")
            return "timeout"
        except Exception as e:
            logger.warning(f"Push to connection {connection_id} failed: {e}")
            return False

    async def _emit_outcome(self, outcome: DeliveryOutcome) -> None:
        if self.event_bus is None:
            return
        event = (
            MessagingEvent.DELIVERY_PARTIAL_FAILURE
            if outcome.partial_failure
            else MessagingEvent.MESSAGE_DELIVERED
        )
        await self.event_bus.emit(event, outcome.to_dict(), source="dispatcher")
