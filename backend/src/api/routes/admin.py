"""
Admin API Routes

Provides ADMIN-only endpoints for:
- POST /api/v1/admin/cleanup - Delete stale push subscriptions
- POST /api/v1/admin/notifications/broadcast - System notification to every live stream
"""

import structlog
from fastapi import APIRouter, Depends

from src.api.dependencies import get_notification_orchestrator, require_admin
from src.models.notification import BroadcastRequest, BroadcastResponse, CleanupResponse
from src.notifications.service import NotificationOrchestrator

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_push_subscriptions(
    admin: dict = Depends(require_admin),
    orchestrator: NotificationOrchestrator = Depends(get_notification_orchestrator),
):
    """Delete push subscriptions the push service reported gone."""
    result = await orchestrator.cleanup_stale_subscriptions()
    deleted = result["deleted"]

    logger.info("Admin push subscription cleanup", admin_id=str(admin["id"]), deleted=deleted)

    return {
        "success": True,
        "message": f"Cleaned up {deleted} stale push subscriptions",
        "deleted": deleted,
    }


@router.post("/notifications/broadcast", response_model=BroadcastResponse)
async def broadcast_notification(
    request: BroadcastRequest,
    admin: dict = Depends(require_admin),
    orchestrator: NotificationOrchestrator = Depends(get_notification_orchestrator),
):
    """Write a system notification to every open realtime stream on this instance."""
    delivered = await orchestrator.broadcast_system_notification(
        request.title, request.message, request.data
    )

    return {
        "success": True,
        "message": f"Broadcast delivered to {delivered} connections",
        "delivered": delivered,
    }
