"""
Connection Registry - tracks live connections and their room memberships.

A room is a per-user delivery channel keyed ``user_<id>``. Memberships only
ever reference live connections: ``leave`` drops the connection handle and
every membership it holds in one step.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Set
import logging
import threading

from campus_chat.services.exceptions import InvalidArgument

logger = logging.getLogger(__name__)

ROOM_PREFIX = "user_"

SendFn = Callable[[Dict[str, Any]], Awaitable[None]]


def parse_user_id(value: Any) -> int:
    """Normalize a user identifier to a positive int.

    Raises:
        InvalidArgument: If the value is not a positive integer or digit string
    """
    if isinstance(value, bool):
        raise InvalidArgument(f"Invalid user id: {value!r}")
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise InvalidArgument(f"Invalid user id: {value!r}")
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise InvalidArgument(f"Invalid user id: {value!r}")
    return value


def room_key_for(user_id: Any) -> str:
    """Room key of the per-user delivery channel."""
    return f"{ROOM_PREFIX}{parse_user_id(user_id)}"


def user_id_from_room_key(room_key: str) -> int:
    """Inverse of :func:`room_key_for`."""
    if not isinstance(room_key, str) or not room_key.startswith(ROOM_PREFIX):
        raise InvalidArgument(f"Invalid room key: {room_key!r}")
    return parse_user_id(room_key[len(ROOM_PREFIX):])


@dataclass
class Connection:
    """A live network session. Never persisted."""
    connection_id: str
    send: SendFn
    user_id: Optional[int] = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    rooms: Set[str] = field(default_factory=set)


class ConnectionRegistry:
    """
    Owns the connection -> room membership relation.

    Every mutation and read runs under one lock, so the registry is safe
    to share between the event loop and worker threads.
    """

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def connect(self, connection_id: str, send: SendFn) -> Connection:
        """Register a live connection and the callable used to transmit to it."""
        _check_connection_id(connection_id)
        with self._lock:
            if connection_id in self._connections:
                raise InvalidArgument(f"Connection {connection_id} is already registered")
            connection = Connection(connection_id=connection_id, send=send)
            self._connections[connection_id] = connection

        logger.info(f"Connection {connection_id} registered")
        return connection

    def join(self, connection_id: str, room_key: str) -> bool:
        """
        Add a connection to a room.

        Returns:
            True if the membership is new, False if it already existed

        Raises:
            InvalidArgument: Empty ids or a connection that is not live
        """
        _check_connection_id(connection_id)
        if not isinstance(room_key, str) or not room_key:
            raise InvalidArgument("Room key must be a non-empty string")

        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                raise InvalidArgument(f"Connection {connection_id} is not connected")

            members = self._rooms.setdefault(room_key, set())
            added = connection_id not in members
            members.add(connection_id)
            connection.rooms.add(room_key)
            suffix = room_key[len(ROOM_PREFIX):]
            if connection.user_id is None and room_key.startswith(ROOM_PREFIX) and suffix.isdigit():
                connection.user_id = int(suffix)

        if added:
            logger.info(f"Connection {connection_id} joined room {room_key}")
        else:
            logger.debug(f"Connection {connection_id} already in room {room_key}")
        return added

    def leave(self, connection_id: str) -> Set[str]:
        """
        Drop a connection and all of its memberships.

        Safe to call for ids that were never registered.

        Returns:
            The rooms the connection was removed from
        """
        _check_connection_id(connection_id)
        with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is None:
                return set()

            for room_key in connection.rooms:
                members = self._rooms.get(room_key)
                if members is None:
                    continue
                members.discard(connection_id)
                if not members:
                    del self._rooms[room_key]
            rooms = set(connection.rooms)
            connection.rooms.clear()

        logger.info(f"Connection {connection_id} left rooms {sorted(rooms)}")
        return rooms

    def members_of(self, room_key: str) -> FrozenSet[str]:
        """Snapshot of the connection ids subscribed to a room."""
        with self._lock:
            return frozenset(self._rooms.get(room_key, ()))

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(connection_id)

    def rooms_of(self, connection_id: str) -> FrozenSet[str]:
        with self._lock:
            connection = self._connections.get(connection_id)
            return frozenset(connection.rooms) if connection else frozenset()

    def is_connected(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._connections

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    @property
    def room_count(self) -> int:
        with self._lock:
            return len(self._rooms)


def _check_connection_id(connection_id: str) -> None:
    if not isinstance(connection_id, str) or not connection_id.strip():
        raise InvalidArgument("Connection id must be a non-empty string")
