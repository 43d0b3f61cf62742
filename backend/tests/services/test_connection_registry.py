"""Tests for the connection registry."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import AsyncMock

import pytest

from campus_chat.services import ConnectionRegistry, InvalidArgument
from campus_chat.services.connection_registry import (
    parse_user_id,
    room_key_for,
    user_id_from_room_key,
)


class TestRoomKeys:

    def test_room_key_for_int(self):
        assert room_key_for(2) == "user_2"

    def test_room_key_for_digit_string(self):
        assert room_key_for(" 42 ") == "user_42"

    @pytest.mark.parametrize("value", [0, -3, "", "abc", "1.5", None, True, 2.0, "user_2"])
    def test_parse_user_id_rejects(self, value):
        with pytest.raises(InvalidArgument):
            parse_user_id(value)

    def test_user_id_from_room_key(self):
        assert user_id_from_room_key("user_15") == 15

    @pytest.mark.parametrize("room_key", ["room_1", "user_", "user_x", "", 3])
    def test_user_id_from_room_key_rejects(self, room_key):
        with pytest.raises(InvalidArgument):
            user_id_from_room_key(room_key)


class TestConnectionRegistry:

    def test_join_adds_member(self, registry, connect):
        connect("c1")
        assert registry.join("c1", "user_2") is True
        assert registry.members_of("user_2") == {"c1"}
        assert registry.rooms_of("c1") == {"user_2"}

    def test_join_records_user(self, registry, connect):
        connect("c1", "user_2")
        assert registry.get_connection("c1").user_id == 2

    def test_two_connections_same_room(self, registry, connect):
        connect("c1", "user_2")
        connect("c2", "user_2")
        assert registry.members_of("user_2") == {"c1", "c2"}

    def test_join_is_idempotent(self, registry, connect):
        connect("c1")
        assert registry.join("c1", "user_2") is True
        assert registry.join("c1", "user_2") is False
        assert len(registry.members_of("user_2")) == 1
        assert registry.room_count == 1

    def test_connection_may_join_several_rooms(self, registry, connect):
        connect("c1", "user_1", "user_2")
        assert registry.rooms_of("c1") == {"user_1", "user_2"}

    def test_members_of_unknown_room_is_empty(self, registry):
        assert registry.members_of("user_99") == frozenset()

    def test_members_of_returns_snapshot(self, registry, connect):
        connect("c1", "user_2")
        members = registry.members_of("user_2")
        registry.leave("c1")
        assert members == {"c1"}

    def test_leave_removes_every_membership(self, registry, connect):
        connect("c1", "user_1", "user_2")
        connect("c2", "user_2")

        removed = registry.leave("c1")

        assert removed == {"user_1", "user_2"}
        assert registry.members_of("user_1") == frozenset()
        assert registry.members_of("user_2") == {"c2"}
        assert not registry.is_connected("c1")
        assert registry.room_count == 1

    def test_leave_unknown_connection_is_noop(self, registry):
        assert registry.leave("never-seen") == set()

    def test_leave_twice(self, registry, connect):
        connect("c1", "user_2")
        registry.leave("c1")
        assert registry.leave("c1") == set()

    def test_join_requires_live_connection(self, registry):
        with pytest.raises(InvalidArgument):
            registry.join("ghost", "user_2")
        assert registry.members_of("user_2") == frozenset()

    def test_join_after_leave_is_rejected(self, registry, connect):
        connect("c1", "user_2")
        registry.leave("c1")
        with pytest.raises(InvalidArgument):
            registry.join("c1", "user_2")

    @pytest.mark.parametrize("connection_id", ["", "   ", None, 5])
    def test_invalid_connection_id(self, registry, connection_id):
        with pytest.raises(InvalidArgument):
            registry.join(connection_id, "user_2")
        with pytest.raises(InvalidArgument):
            registry.leave(connection_id)
        with pytest.raises(InvalidArgument):
            registry.connect(connection_id, AsyncMock())

    @pytest.mark.parametrize("room_key", ["", None])
    def test_invalid_room_key(self, registry, connect, room_key):
        connect("c1")
        with pytest.raises(InvalidArgument):
            registry.join("c1", room_key)

    def test_invalid_join_leaves_other_state_alone(self, registry, connect):
        connect("c1", "user_2")
        with pytest.raises(InvalidArgument):
            registry.join("c2", "user_2")
        assert registry.members_of("user_2") == {"c1"}

    def test_duplicate_connect_rejected(self, registry, connect):
        connect("c1")
        with pytest.raises(InvalidArgument):
            registry.connect("c1", AsyncMock())

    def test_connection_count(self, registry, connect):
        connect("c1")
        connect("c2")
        registry.leave("c1")
        assert registry.connection_count == 1

    def test_concurrent_joins_and_leaves_from_threads(self):
        registry = ConnectionRegistry()
        ids = [f"c{i}" for i in range(200)]
        for connection_id in ids:
            registry.connect(connection_id, AsyncMock())

        def churn(connection_id):
            registry.join(connection_id, "user_1")
            registry.join(connection_id, "user_1")
            if int(connection_id[1:]) % 2:
                registry.leave(connection_id)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(churn, ids))

        expected = {c for c in ids if int(c[1:]) % 2 == 0}
        assert registry.members_of("user_1") == expected
        assert registry.connection_count == len(expected)
