"""
Realtime Notification Stream

GET /api/v1/notifications/realtime opens a server-sent-event stream carrying
the current user's trigger outcomes and system notifications. The first
frame is always ``{"type": "connected", ...}``; keep-alive comments follow
every ``sse_ping_interval_seconds`` while the stream is idle.
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from src.api.dependencies import get_realtime_registry, get_stream_user_id
from src.config import settings
from src.notifications.realtime import RealtimeRegistry, SSEConnection

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/notifications", tags=["realtime"])


async def stream_frames(registry: RealtimeRegistry, user_id: UUID, connection: SSEConnection):
    """Drain a connection's queue into SSE events until it closes or the client leaves."""
    try:
        async for frame in connection.frames():
            yield {"data": frame}
    finally:
        # Only drops the entry if this handle is still the registered one
        await registry.unregister(user_id, connection)
        connection.close()
        logger.debug(
            "Realtime stream ended",
            user_id=str(user_id),
            connection_id=connection.connection_id,
        )


@router.get("/realtime")
async def realtime_stream(
    user_id: UUID = Depends(get_stream_user_id),
    registry: RealtimeRegistry = Depends(get_realtime_registry),
):
    """
    Open the realtime notification stream.

    Authenticate with a bearer header or ``?token=<access token>``. A new
    stream for the same user replaces the previous one.
    """
    connection = await registry.register_connection(user_id)

    return EventSourceResponse(
        stream_frames(registry, user_id, connection),
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        ping=settings.sse_ping_interval_seconds,
        sep="\n",
    )
