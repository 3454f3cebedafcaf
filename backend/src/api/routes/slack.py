"""
Slack integration routes.

POST /api/v1/slack/test posts a test message to a webhook URL so users can
check it before saving it in their notification settings.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import get_current_user, get_slack_client
from src.models.notification import NotificationResponse, SlackTestRequest
from src.notifications.exceptions import ConfigurationError
from src.notifications.slack_client import SlackClient, validate_slack_webhook_url

router = APIRouter(prefix="/api/v1/slack", tags=["slack"])


@router.post("/test", response_model=NotificationResponse)
async def test_slack_webhook(
    request: SlackTestRequest,
    current_user: dict = Depends(get_current_user),
    slack_client: SlackClient = Depends(get_slack_client),
):
    """
    Send a test message to a Slack incoming webhook.

    Returns 400 for non-Slack URLs and 502 when Slack does not accept the post.
    """
    try:
        webhook_url = validate_slack_webhook_url(request.webhook_url.strip())
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    sent = await slack_client.send_test_message(webhook_url, current_user["email"])
    if not sent:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to send test message to Slack",
        )

    return {
        "success": True,
        "message": "Test message sent to Slack",
    }
