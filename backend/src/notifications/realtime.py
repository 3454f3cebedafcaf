"""
Realtime (SSE) Connection Registry

Tracks one live server-sent-event connection per user and writes
notification frames to it.

Architecture:
-------------
- SSEConnection: handle for one open stream. ``write`` enqueues a frame on a
  bounded queue; the stream route drains the queue into the HTTP response.
- RealtimeRegistry: ``user_id -> SSEConnection`` map guarded by an
  ``asyncio.Lock``. A new connection from the same user replaces the old one
  (last connect wins), so a second tab silently orphans the first.

The registry lives in process memory. Deployments running several workers do
not see each other's connections; clients reconnect on their own.
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from src.models.notification import RealtimeNotification, RealtimeNotificationType
from src.observability.metrics import realtime_connections_active

logger = structlog.get_logger(__name__)

_CLOSE = object()


class ConnectionClosedError(Exception):
    """Write attempted on a closed connection."""


class SSEConnection:
    """Writable handle for one open realtime stream."""

    def __init__(self, user_id: UUID, max_queue_size: int = 100):
        self.user_id = user_id
        self.connection_id = str(uuid4())
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: str) -> None:
        """
        Queue one frame body for the stream.

        Raises:
            ConnectionClosedError: The stream has been closed
            asyncio.QueueFull: The client stopped reading
        """
        if self._closed:
            raise ConnectionClosedError(f"Connection {self.connection_id} is closed")
        self._queue.put_nowait(data)

    def close(self) -> None:
        """Close the stream; pending frames are discarded."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSE)

    async def frames(self) -> AsyncIterator[str]:
        """Yield queued frame bodies until the connection is closed."""
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            yield item


class RealtimeRegistry:
    """
    Process-wide registry of live realtime connections.

    All mutations of the connection map happen under a single lock; writes to
    a connection happen outside it.
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self.max_queue_size = max_queue_size
        self._connections: dict[UUID, SSEConnection] = {}
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def is_connected(self, user_id: UUID) -> bool:
        return user_id in self._connections

    async def register_connection(self, user_id: UUID) -> SSEConnection:
        """
        Open a connection for a user and store it.

        The ``connected`` frame is queued before the handle is published, so
        it is always the first frame on the stream. Any previous connection
        for the user is replaced and closed, which ends that stream.
        """
        connection = SSEConnection(user_id, max_queue_size=self.max_queue_size)
        connection.write(
            RealtimeNotification(
                type=RealtimeNotificationType.CONNECTED,
                message="Real-time notifications connected",
            ).to_sse_data()
        )

        async with self._lock:
            previous = self._connections.get(user_id)
            self._connections[user_id] = connection
            realtime_connections_active.set(len(self._connections))

        if previous is not None:
            previous.close()
            logger.info(
                "Realtime connection replaced",
                user_id=str(user_id),
                previous_connection_id=previous.connection_id,
                connection_id=connection.connection_id,
            )
        else:
            logger.info(
                "Realtime connection opened",
                user_id=str(user_id),
                connection_id=connection.connection_id,
            )

        return connection

    async def unregister(self, user_id: UUID, connection: Optional[SSEConnection] = None) -> bool:
        """
        Remove a user's connection.

        Args:
            user_id: Connection owner
            connection: Only remove the entry if it is this handle. A replaced
                tab closing must not evict the connection that replaced it.

        Returns:
            True if an entry was removed
        """
        async with self._lock:
            current = self._connections.get(user_id)
            if current is None or (connection is not None and current is not connection):
                return False
            del self._connections[user_id]
            realtime_connections_active.set(len(self._connections))

        logger.info(
            "Realtime connection removed",
            user_id=str(user_id),
            connection_id=current.connection_id,
        )
        return True

    async def send_to_user(self, user_id: UUID, notification: RealtimeNotification) -> bool:
        """
        Write a notification to a user's live connection.

        A failed write means the peer is gone: the entry is removed and the
        notification dropped.

        Returns:
            True if a frame was written, False if the user has no usable connection
        """
        async with self._lock:
            connection = self._connections.get(user_id)

        if connection is None:
            return False

        try:
            connection.write(notification.to_sse_data())
        except (ConnectionClosedError, asyncio.QueueFull) as e:
            logger.warning(
                "Realtime write failed, dropping connection",
                user_id=str(user_id),
                connection_id=connection.connection_id,
                error=type(e).__name__,
            )
            await self.unregister(user_id, connection)
            return False

        return True

    async def broadcast(self, notification: RealtimeNotification) -> int:
        """
        Write a notification to every live connection.

        Failed connections are removed; the rest still receive the frame.

        Returns:
            Number of connections written to
        """
        async with self._lock:
            snapshot = list(self._connections.items())

        data = notification.to_sse_data()
        delivered = 0
        failed: list[tuple[UUID, SSEConnection]] = []

        for user_id, connection in snapshot:
            try:
                connection.write(data)
                delivered += 1
            except (ConnectionClosedError, asyncio.QueueFull):
                failed.append((user_id, connection))

        for user_id, connection in failed:
            logger.warning(
                "Realtime broadcast write failed, dropping connection",
                user_id=str(user_id),
                connection_id=connection.connection_id,
            )
            await self.unregister(user_id, connection)

        return delivered

    async def close_all(self) -> None:
        """Close every connection (application shutdown)."""
        async with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
            realtime_connections_active.set(0)

        for connection in connections:
            connection.close()
