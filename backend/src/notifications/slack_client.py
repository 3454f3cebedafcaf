"""
Slack Notification Client

Posts trigger outcomes to a user's Slack incoming webhook as Block Kit
messages. Delivery is best effort: every failure is logged and reported as
``False``, never raised.
"""

from datetime import UTC, datetime
from typing import Any, Optional

import httpx
import structlog

from src.models.notification import SLACK_WEBHOOK_PREFIX, ChannelContext, TriggerOutcomeEvent
from src.notifications.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

FOOTER = "WebTrigger"


def is_slack_webhook_url(url: Optional[str]) -> bool:
    return bool(url) and url.startswith(SLACK_WEBHOOK_PREFIX)


def validate_slack_webhook_url(url: Optional[str]) -> str:
    """
    Check a URL before it is used for an interactive send.

    Raises:
        ConfigurationError: URL is not a Slack incoming-webhook URL
    """
    if not is_slack_webhook_url(url):
        raise ConfigurationError("Invalid Slack webhook URL")
    return url


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.strftime("%Y-%m-%d %H:%M:%S %Z")


def _field(label: str, value: Any) -> dict[str, str]:
    return {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}


def build_webhook_message(event: TriggerOutcomeEvent, context: ChannelContext) -> dict[str, Any]:
    """
    Build the Slack message for a trigger outcome.

    Layout: header with outcome glyph, callback fields, optional status
    code/response time, optional details, today's stats, and a footer line
    naming the user.
    """
    glyph = "✅" if event.success else "❌"
    headline = "Webhook Triggered" if event.success else "Webhook Failed"

    blocks: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"{glyph} {headline}", "emoji": True},
        },
        {
            "type": "section",
            "fields": [
                _field("Callback", event.callback_name),
                _field("URL", event.callback_url),
                _field("Time", _format_time(event.triggered_at)),
                _field("Status", "Success" if event.success else "Failed"),
            ],
        },
    ]

    timing_fields = []
    if event.status_code is not None:
        timing_fields.append(_field("Status Code", event.status_code))
    if event.response_time is not None:
        timing_fields.append(_field("Response Time", f"{event.response_time}ms"))
    if timing_fields:
        blocks.append({"type": "section", "fields": timing_fields})

    details = event.details or event.error
    if details:
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": f"*Details:*\n{details}"}})

    blocks.append({"type": "divider"})
    blocks.append(
        {
            "type": "section",
            "fields": [
                _field("Today's Triggers", context.total_triggers_today),
                _field("Success Rate", f"{context.success_rate:.1f}%"),
                _field("Avg Response Time", f"{context.avg_response_time_ms:.0f}ms"),
            ],
        }
    )
    blocks.append(
        {
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": f"User: {event.user_email} | {FOOTER}"}],
        }
    )

    return {
        "blocks": blocks,
        "attachments": [
            {
                "color": "good" if event.success else "danger",
                "footer": FOOTER,
                "ts": int(event.triggered_at.timestamp()),
            }
        ],
    }


def build_test_message(user_email: str, sent_at: Optional[datetime] = None) -> dict[str, Any]:
    """Message sent when a user checks their webhook from the settings page."""
    sent_at = sent_at or datetime.now(UTC)
    return {
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "🔧 Slack Integration Test", "emoji": True},
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": (
                        "Hello! Your Slack integration with WebTrigger is working correctly. "
                        "You will receive notifications here when your webhooks are triggered.\n\n"
                        f"*User:* {user_email}\n*Time:* {_format_time(sent_at)}"
                    ),
                },
            },
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": "WebTrigger - Smart Webhook Management"}
                ],
            },
        ]
    }


class SlackClient:
    """Slack incoming-webhook client."""

    def __init__(self, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            timeout: POST timeout in seconds
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
        """
        self.timeout = timeout
        self.transport = transport

    async def send_webhook_notification(
        self,
        webhook_url: str,
        event: TriggerOutcomeEvent,
        context: ChannelContext,
    ) -> bool:
        """
        Post a trigger outcome to Slack.

        The URL was validated when the settings were saved, so it is not
        checked again here.

        Returns:
            True only if Slack answered HTTP 200
        """
        return await self._post(webhook_url, build_webhook_message(event, context))

    async def send_test_message(self, webhook_url: str, user_email: str) -> bool:
        """Post the integration test message."""
        return await self._post(webhook_url, build_test_message(user_email))

    async def _post(self, webhook_url: str, body: dict[str, Any]) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(webhook_url, json=body)
        except Exception as e:
            logger.error("Slack webhook request failed", error=str(e))
            return False

        if response.status_code != 200:
            logger.warning(
                "Slack webhook rejected notification",
                status_code=response.status_code,
                response=response.text[:200],
            )
            return False

        logger.info("Slack notification sent successfully")
        return True
