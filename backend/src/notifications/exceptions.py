"""
Notification error hierarchy.

Channel failures are raised by the delivery clients and caught at the
orchestrator's channel boundary; the remaining errors surface to API callers
through the routes.
"""

from typing import Optional

from src.models.notification import NotificationChannel, PushFailureReason


class NotificationError(Exception):
    """Base class for notification errors."""


class AuthenticationError(NotificationError):
    """Missing, invalid or expired credential on an inbound request."""


class ConfigurationError(NotificationError):
    """A channel cannot be used as configured (missing VAPID keys, bad Slack URL)."""


class ChannelDeliveryError(NotificationError):
    """A channel failed to deliver a notification."""

    def __init__(self, channel: NotificationChannel, message: str):
        super().__init__(message)
        self.channel = channel


class PushDeliveryError(ChannelDeliveryError):
    """Web Push delivery failed.

    ``reason`` tells the caller whether the stored subscription should be
    removed (``SUBSCRIPTION_EXPIRED``) or left alone.
    """

    def __init__(
        self,
        message: str,
        reason: PushFailureReason = PushFailureReason.TRANSIENT_OR_CONFIG,
        status_code: Optional[int] = None,
    ):
        super().__init__(NotificationChannel.PUSH, message)
        self.reason = reason
        self.status_code = status_code


class SubscriptionExpired(PushDeliveryError):
    """The push service reported the endpoint gone (HTTP 404/410)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(
            message,
            reason=PushFailureReason.SUBSCRIPTION_EXPIRED,
            status_code=status_code,
        )


class EntitlementError(NotificationError):
    """Settings change not allowed on the user's tier."""

    status_code = 403


class ChannelNotEntitledError(EntitlementError):
    status_code = 403


class RecipientLimitExceededError(EntitlementError):
    status_code = 400

    def __init__(self, limit: int):
        super().__init__(f"Your plan allows maximum {limit} notification recipients total")
        self.limit = limit
