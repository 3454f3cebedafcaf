"""
Notification API Routes

Provides REST endpoints for:
- GET /api/v1/notifications/settings - Get settings with tier gating applied
- PUT /api/v1/notifications/settings - Update settings
- POST /api/v1/notifications/push/subscribe - Subscribe to push
- POST /api/v1/notifications/push/unsubscribe - Unsubscribe from push
- POST /api/v1/notifications/push/send-test - Send a test push
- GET /api/v1/notifications/push/vapid-public-key - Key for browser subscription
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import (
    get_current_user,
    get_notification_orchestrator,
    get_notification_repository,
)
from src.config import settings
from src.models.notification import (
    NotificationResponse,
    NotificationSettings,
    NotificationSettingsResponse,
    PushSubscriptionRequest,
    PushTestRequest,
    PushUnsubscribeRequest,
)
from src.notifications.entitlements import (
    apply_tier_gating,
    enforce_settings_entitlements,
    has_paid_subscription,
    subscription_required,
)
from src.notifications.exceptions import (
    ConfigurationError,
    EntitlementError,
    PushDeliveryError,
    SubscriptionExpired,
)
from src.notifications.service import NotificationOrchestrator
from src.observability.metrics import push_subscriptions_deleted_total
from src.repositories.notification_repository import NotificationRepository

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def _settings_response(
    notification_settings: NotificationSettings, current_user: dict
) -> NotificationSettingsResponse:
    tier = current_user["tier"]
    gated = apply_tier_gating(notification_settings, tier)
    return NotificationSettingsResponse(
        **gated.model_dump(),
        has_paid_subscription=has_paid_subscription(tier),
        subscription_required=subscription_required(tier),
    )


@router.get("/settings", response_model=NotificationSettingsResponse)
async def get_notification_settings(
    current_user: dict = Depends(get_current_user),
    repository: NotificationRepository = Depends(get_notification_repository),
):
    """
    Get notification settings for current user.

    Returns default settings if none are saved. WhatsApp and SMS always read
    as disabled for Free accounts.
    """
    user_id = current_user["id"]

    notification_settings = await repository.get_notification_settings(user_id)
    if notification_settings is None:
        notification_settings = NotificationSettings(user_id=user_id)

    return _settings_response(notification_settings, current_user)


@router.put("/settings", response_model=NotificationSettingsResponse)
async def update_notification_settings(
    notification_settings: NotificationSettings,
    current_user: dict = Depends(get_current_user),
    repository: NotificationRepository = Depends(get_notification_repository),
):
    """
    Replace notification settings for current user.

    Invalid Slack URLs are rejected by validation (422). Paid-only channels
    on a Free account give 403; too many recipients for the tier give 400.
    """
    user_id = current_user["id"]

    try:
        enforce_settings_entitlements(notification_settings, current_user["tier"])
    except EntitlementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e

    stored = await repository.upsert_notification_settings(user_id, notification_settings)

    logger.info("Notification settings updated", user_id=str(user_id))
    return _settings_response(stored, current_user)


@router.post("/push/subscribe", response_model=NotificationResponse)
async def subscribe_to_push(
    subscription: PushSubscriptionRequest,
    current_user: dict = Depends(get_current_user),
    repository: NotificationRepository = Depends(get_notification_repository),
):
    """
    Subscribe to push notifications.

    Request body is the browser's subscription JSON:
    {
      "endpoint": "https://...",
      "keys": {
        "p256dh": "...",
        "auth": "..."
      }
    }

    A user holds one subscription; subscribing again replaces it.
    """
    await repository.upsert_push_subscription(
        user_id=current_user["id"],
        endpoint=subscription.endpoint,
        p256dh_key=subscription.keys.p256dh,
        auth_key=subscription.keys.auth,
    )

    return {
        "success": True,
        "message": "Push subscription saved successfully",
    }


@router.post("/push/unsubscribe", response_model=NotificationResponse)
async def unsubscribe_from_push(
    request: Optional[PushUnsubscribeRequest] = None,
    current_user: dict = Depends(get_current_user),
    repository: NotificationRepository = Depends(get_notification_repository),
):
    """
    Unsubscribe from push notifications.

    With an endpoint, only a matching subscription is removed.
    """
    endpoint = request.endpoint if request else None

    deleted = await repository.delete_push_subscription(current_user["id"], endpoint=endpoint)
    if deleted:
        push_subscriptions_deleted_total.labels(reason="unsubscribed").inc()

    return {
        "success": True,
        "message": (
            "Push subscription removed successfully" if deleted else "No push subscription found"
        ),
    }


@router.post("/push/send-test", response_model=NotificationResponse)
async def send_test_push(
    request: Optional[PushTestRequest] = None,
    current_user: dict = Depends(get_current_user),
    orchestrator: NotificationOrchestrator = Depends(get_notification_orchestrator),
):
    """
    Send a test push notification to the current user's subscription.

    Status codes:
    - 404: no subscription
    - 410: push service reports the subscription gone (it is deleted)
    - 502: push service rejected the message
    - 503: VAPID keys not configured
    """
    request = request or PushTestRequest()
    payload = {"title": request.title, "body": request.body, "data": request.data}

    try:
        sent = await orchestrator.send_test_push(current_user["id"], payload)
    except SubscriptionExpired as e:
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail="Push subscription expired. Please subscribe again.",
        ) from e
    except PushDeliveryError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to send push notification: {e}",
        ) from e
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e

    if not sent:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No push subscription found. Please subscribe first.",
        )

    return {
        "success": True,
        "message": "Test push notification sent",
    }


@router.get("/push/vapid-public-key")
async def get_vapid_public_key():
    """Public VAPID key browsers pass as ``applicationServerKey``."""
    if not settings.vapid_public_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Push notifications are not configured",
        )
    return {"public_key": settings.vapid_public_key}
