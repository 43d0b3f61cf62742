"""WebSocket handler for live message delivery."""

import json
import logging
import uuid
from typing import Any, Dict

from fastapi import WebSocket, WebSocketDisconnect

from campus_chat.services import (
    ConnectionRegistry,
    EventBus,
    InvalidArgument,
    MessagingEvent,
    room_key_for,
)

logger = logging.getLogger(__name__)


class ChatWebSocketHandler:
    """Adapts one WebSocket to the connection registry.

    Client frames are JSON objects with a ``type``:

    - ``join_chat`` with ``user_id``: subscribe to that user's room
    - ``ping``: answered with ``pong``

    Pushes arrive as ``new_message`` frames sent by the delivery dispatcher.
    """

    def __init__(self, websocket: WebSocket, registry: ConnectionRegistry, event_bus: EventBus):
        self.websocket = websocket
        self.registry = registry
        self.event_bus = event_bus
        self.connection_id = uuid.uuid4().hex

    async def handle_connection(self):
        """Serve the connection until the client goes away."""
        await self.websocket.accept()
        self.registry.connect(self.connection_id, self.websocket.send_json)
        await self.event_bus.emit(MessagingEvent.CONNECTED, {"connection_id": self.connection_id})

        try:
            await self.websocket.send_json({
                "type": "connected",
                "connection_id": self.connection_id,
            })

            while True:
                data = await self.websocket.receive_text()
                await self._handle_frame(data)

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected for connection {self.connection_id}")
        except Exception as e:
            logger.error(f"WebSocket error on connection {self.connection_id}: {e}", exc_info=True)
        finally:
            # Must happen before anything else can dispatch to this socket
            rooms = self.registry.leave(self.connection_id)
            await self.event_bus.emit(MessagingEvent.DISCONNECTED, {
                "connection_id": self.connection_id,
                "rooms": sorted(rooms),
            })

    async def _handle_frame(self, data: str) -> None:
        try:
            frame = json.loads(data)
        except json.JSONDecodeError:
            await self._send_error(InvalidArgument("Frames must be JSON objects"))
            return

        if not isinstance(frame, dict):
            await self._send_error(InvalidArgument("Frames must be JSON objects"))
            return

        frame_type = frame.get("type")
        if frame_type == "join_chat":
            await self._handle_join(frame)
        elif frame_type == "ping":
            await self.websocket.send_json({"type": "pong"})
        else:
            await self._send_error(InvalidArgument(f"Unknown frame type: {frame_type!r}"))

    async def _handle_join(self, frame: Dict[str, Any]) -> None:
        try:
            room_key = room_key_for(frame.get("user_id"))
            self.registry.join(self.connection_id, room_key)
        except InvalidArgument as e:
            logger.warning(f"Rejected join from connection {self.connection_id}: {e.message}")
            await self._send_error(e)
            return

        await self.event_bus.emit(MessagingEvent.JOINED, {
            "connection_id": self.connection_id,
            "room": room_key,
        })
        await self.websocket.send_json({"type": "joined", "room": room_key})

    async def _send_error(self, error: InvalidArgument) -> None:
        await self.websocket.send_json({"type": "error", **error.to_dict()})
