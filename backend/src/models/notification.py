"""
Notification data models for the webhook outcome fan-out.

This module defines Pydantic models for trigger outcomes, per-user notification
settings, push subscriptions and the frames written to realtime streams.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

SLACK_WEBHOOK_PREFIX = "https://hooks.slack.com/"


class UserTier(str, Enum):
    """Subscription tiers. PREMIUM is sold as the Starter plan."""

    FREE = "FREE"
    PREMIUM = "PREMIUM"
    PRO = "PRO"
    ADMIN = "ADMIN"


# Combined recipient cap across every channel's list (-1 = unlimited)
TIER_RECIPIENT_LIMITS: dict[UserTier, int] = {
    UserTier.FREE: 1,
    UserTier.PREMIUM: 3,
    UserTier.PRO: 10,
    UserTier.ADMIN: -1,
}


class NotificationChannel(str, Enum):
    """Notification delivery channels."""

    SLACK = "slack"
    PUSH = "push"  # Browser push notification
    REALTIME = "realtime"  # Server-sent events to an open tab
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"
    SMS = "sms"


# Channels configured through NotificationSettings toggles
SETTINGS_CHANNELS = (
    NotificationChannel.EMAIL,
    NotificationChannel.WHATSAPP,
    NotificationChannel.TELEGRAM,
    NotificationChannel.SMS,
    NotificationChannel.PUSH,
)

# Channels that require a paid tier
PAID_CHANNELS = frozenset({NotificationChannel.WHATSAPP, NotificationChannel.SMS})


class RealtimeNotificationType(str, Enum):
    """Frame types written to realtime streams."""

    CONNECTED = "connected"
    WEBHOOK_SUCCESS = "webhook_success"
    WEBHOOK_FAILURE = "webhook_failure"
    SYSTEM = "system"


class PushFailureReason(str, Enum):
    """Classification of a failed push delivery."""

    SUBSCRIPTION_EXPIRED = "subscription_expired"
    TRANSIENT_OR_CONFIG = "transient_or_config"


class TriggerOutcomeEvent(BaseModel):
    """Outcome of one callback execution, built by the trigger route."""

    callback_id: UUID
    callback_name: str
    callback_url: str
    success: bool
    status_code: Optional[int] = None
    response_time: Optional[int] = Field(None, ge=0, description="Response time in ms")
    error: Optional[str] = None
    details: Optional[str] = None
    triggered_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    user_id: UUID
    user_email: str

    class Config:
        json_encoders = {datetime: lambda v: v.isoformat(), UUID: lambda v: str(v)}


class ChannelContext(BaseModel):
    """Daily statistics shown alongside an outcome notification."""

    total_triggers_today: int = Field(..., ge=0)
    success_rate: float = Field(..., ge=0, le=100)
    avg_response_time_ms: float = Field(0.0, ge=0)


class NotificationSettings(BaseModel):
    """Per-user notification settings.

    Defaults apply when the user has never saved settings: email on, every
    other channel off, and failure alerts preferred over success alerts.
    """

    user_id: Optional[UUID] = None

    email_enabled: bool = True
    email_on_success: bool = True
    email_on_failure: bool = True

    whatsapp_enabled: bool = False
    whatsapp_on_success: bool = False
    whatsapp_on_failure: bool = True

    telegram_enabled: bool = False
    telegram_on_success: bool = False
    telegram_on_failure: bool = True

    sms_enabled: bool = False
    sms_on_success: bool = False
    sms_on_failure: bool = True

    push_enabled: bool = False
    push_on_success: bool = False
    push_on_failure: bool = True

    email_recipients: list[str] = Field(default_factory=list)
    whatsapp_numbers: list[str] = Field(default_factory=list)
    telegram_chat_ids: list[str] = Field(default_factory=list)
    sms_numbers: list[str] = Field(default_factory=list)

    slack_webhook_url: Optional[str] = None

    updated_at: Optional[datetime] = None

    @field_validator("slack_webhook_url")
    @classmethod
    def validate_slack_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        """Reject webhook URLs that are not Slack incoming webhooks."""
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if not v.startswith(SLACK_WEBHOOK_PREFIX):
            raise ValueError(f"Slack webhook URL must start with {SLACK_WEBHOOK_PREFIX}")
        return v

    def total_recipients(self) -> int:
        """Recipients across every channel's list."""
        return (
            len(self.email_recipients)
            + len(self.whatsapp_numbers)
            + len(self.telegram_chat_ids)
            + len(self.sms_numbers)
        )

    def channel_flags(self, channel: NotificationChannel) -> tuple[bool, bool, bool]:
        """Return (enabled, on_success, on_failure) for a settings channel."""
        if channel not in SETTINGS_CHANNELS:
            raise ValueError(f"{channel.value} is not configured through notification settings")
        prefix = channel.value
        return (
            getattr(self, f"{prefix}_enabled"),
            getattr(self, f"{prefix}_on_success"),
            getattr(self, f"{prefix}_on_failure"),
        )


class NotificationSettingsResponse(NotificationSettings):
    """Settings returned to the dashboard with the tier gating summary."""

    has_paid_subscription: bool
    subscription_required: dict[str, bool]


class PushSubscription(BaseModel):
    """Stored browser push subscription."""

    user_id: UUID
    endpoint: str
    p256dh_key: str
    auth_key: str
    expired_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PushSubscriptionKeys(BaseModel):
    """Encryption keys reported by the browser's PushManager."""

    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscriptionRequest(BaseModel):
    """Subscription JSON as produced by ``PushSubscription.toJSON()``."""

    endpoint: str = Field(..., min_length=1)
    keys: PushSubscriptionKeys


class PushUnsubscribeRequest(BaseModel):
    endpoint: Optional[str] = None


class PushTestRequest(BaseModel):
    title: str = "Test"
    body: str = "This is a test notification"
    data: dict[str, Any] = Field(default_factory=dict)


class RealtimeNotification(BaseModel):
    """One frame on a user's realtime stream."""

    type: RealtimeNotificationType
    title: Optional[str] = None
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_sse_data(self) -> str:
        """Serialize as the JSON body of a ``data:`` frame."""
        return self.model_dump_json(exclude_none=True)


class BroadcastRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    data: dict[str, Any] = Field(default_factory=dict)


class SlackTestRequest(BaseModel):
    webhook_url: str = Field(..., min_length=1)


class NotificationResponse(BaseModel):
    """Generic response for notification operations."""

    success: bool
    message: str


class CleanupResponse(NotificationResponse):
    deleted: int


class BroadcastResponse(NotificationResponse):
    delivered: int
