"""
Unit Tests for RealtimeRegistry

Tests the live connection registry including:
- Connected frame ordering
- Last-connect-wins replacement (the replaced stream is closed)
- Concurrent mutations for different users
- Identity-checked unregister
- Failed writes dropping the connection
- Broadcast across connections
"""

import asyncio
import json
from uuid import uuid4

import pytest

from src.models.notification import RealtimeNotification, RealtimeNotificationType
from src.notifications.realtime import ConnectionClosedError, RealtimeRegistry, SSEConnection


def _notification(message="Deploy hook executed successfully"):
    return RealtimeNotification(
        type=RealtimeNotificationType.WEBHOOK_SUCCESS,
        title="Webhook Triggered",
        message=message,
    )


async def _next_frame(connection: SSEConnection) -> dict:
    frames = connection.frames()
    return json.loads(await asyncio.wait_for(frames.__anext__(), timeout=1))


class TestSSEConnection:
    """Tests for the connection handle."""

    @pytest.mark.asyncio
    async def test_frames_end_after_close(self):
        connection = SSEConnection(uuid4())
        connection.write("one")
        connection.close()

        frames = [frame async for frame in connection.frames()]

        # Pending frames are discarded on close
        assert frames == []
        assert connection.closed is True

    def test_write_after_close_raises(self):
        connection = SSEConnection(uuid4())
        connection.close()

        with pytest.raises(ConnectionClosedError):
            connection.write("late")

    def test_full_queue_raises(self):
        connection = SSEConnection(uuid4(), max_queue_size=1)
        connection.write("one")

        with pytest.raises(asyncio.QueueFull):
            connection.write("two")


class TestRegisterConnection:
    """Tests for register_connection."""

    @pytest.mark.asyncio
    async def test_connected_frame_is_first(self):
        """Test that the connected frame precedes any notification."""
        registry = RealtimeRegistry()
        user_id = uuid4()

        connection = await registry.register_connection(user_id)
        await registry.send_to_user(user_id, _notification())

        first = await _next_frame(connection)
        second = await _next_frame(connection)

        assert first["type"] == "connected"
        assert first["message"] == "Real-time notifications connected"
        assert "timestamp" in first
        assert second["type"] == "webhook_success"

    @pytest.mark.asyncio
    async def test_second_connection_replaces_first(self):
        """Test last-connect-wins: only the newest tab receives frames."""
        registry = RealtimeRegistry()
        user_id = uuid4()

        first = await registry.register_connection(user_id)
        await _next_frame(first)
        second = await registry.register_connection(user_id)
        await _next_frame(second)

        assert registry.connection_count == 1
        assert await registry.send_to_user(user_id, _notification()) is True

        assert (await _next_frame(second))["type"] == "webhook_success"

    @pytest.mark.asyncio
    async def test_replaced_connection_stream_ends(self):
        """Test that the replaced tab's stream is closed instead of idling."""
        registry = RealtimeRegistry()
        user_id = uuid4()

        first = await registry.register_connection(user_id)
        second = await registry.register_connection(user_id)

        assert first.closed is True
        assert [frame async for frame in first.frames()] == []
        assert second.closed is False


class TestConcurrentAccess:
    """Tests for concurrent registry mutations across users."""

    @pytest.mark.asyncio
    async def test_concurrent_register_and_unregister_do_not_interfere(self):
        """Test that simultaneous opens and closes for different users keep the map exact."""
        registry = RealtimeRegistry()
        leaving = [uuid4() for _ in range(50)]
        staying = [uuid4() for _ in range(50)]

        leaving_connections = await asyncio.gather(
            *(registry.register_connection(user_id) for user_id in leaving)
        )

        async def reconnect_later(user_id):
            await asyncio.sleep(0)
            return await registry.register_connection(user_id)

        results = await asyncio.gather(
            *(
                registry.unregister(user_id, connection)
                for user_id, connection in zip(leaving, leaving_connections)
            ),
            *(registry.register_connection(user_id) for user_id in staying),
            *(reconnect_later(user_id) for user_id in staying[:10]),
        )

        assert all(removed is True for removed in results[: len(leaving)])
        assert registry.connection_count == len(staying)
        assert all(registry.is_connected(user_id) for user_id in staying)
        assert not any(registry.is_connected(user_id) for user_id in leaving)

        # Every staying user holds exactly one open connection
        assert await registry.broadcast(_notification()) == len(staying)


class TestUnregister:
    """Tests for unregister."""

    @pytest.mark.asyncio
    async def test_replaced_connection_cannot_evict_newer_one(self):
        """Test that the old tab's cleanup leaves the new tab registered."""
        registry = RealtimeRegistry()
        user_id = uuid4()

        first = await registry.register_connection(user_id)
        second = await registry.register_connection(user_id)

        assert await registry.unregister(user_id, first) is False
        assert registry.is_connected(user_id)

        assert await registry.unregister(user_id, second) is True
        assert not registry.is_connected(user_id)

    @pytest.mark.asyncio
    async def test_unregister_without_handle_removes_entry(self):
        registry = RealtimeRegistry()
        user_id = uuid4()
        await registry.register_connection(user_id)

        assert await registry.unregister(user_id) is True
        assert await registry.unregister(user_id) is False


class TestSendToUser:
    """Tests for send_to_user."""

    @pytest.mark.asyncio
    async def test_no_connection_is_noop(self):
        registry = RealtimeRegistry()

        assert await registry.send_to_user(uuid4(), _notification()) is False

    @pytest.mark.asyncio
    async def test_closed_connection_is_dropped(self):
        """Test that a failed write removes the entry and drops the frame."""
        registry = RealtimeRegistry()
        user_id = uuid4()
        connection = await registry.register_connection(user_id)
        connection.close()

        assert await registry.send_to_user(user_id, _notification()) is False
        assert not registry.is_connected(user_id)

    @pytest.mark.asyncio
    async def test_stalled_reader_is_dropped(self):
        registry = RealtimeRegistry(max_queue_size=1)
        user_id = uuid4()
        # Queue already holds the connected frame
        await registry.register_connection(user_id)

        assert await registry.send_to_user(user_id, _notification()) is False
        assert not registry.is_connected(user_id)


class TestBroadcast:
    """Tests for broadcast and close_all."""

    @pytest.mark.asyncio
    async def test_broadcast_skips_failed_connections(self):
        """Test that one dead connection does not stop the others."""
        registry = RealtimeRegistry()
        alive_a, alive_b, dead = uuid4(), uuid4(), uuid4()
        connection_a = await registry.register_connection(alive_a)
        await registry.register_connection(alive_b)
        (await registry.register_connection(dead)).close()

        delivered = await registry.broadcast(
            RealtimeNotification(
                type=RealtimeNotificationType.SYSTEM,
                title="Maintenance",
                message="Back in 5 minutes",
            )
        )

        assert delivered == 2
        assert registry.connection_count == 2
        await _next_frame(connection_a)
        assert (await _next_frame(connection_a))["type"] == "system"

    @pytest.mark.asyncio
    async def test_close_all_ends_every_stream(self):
        registry = RealtimeRegistry()
        connection = await registry.register_connection(uuid4())

        await registry.close_all()

        assert registry.connection_count == 0
        assert [frame async for frame in connection.frames()] == []
