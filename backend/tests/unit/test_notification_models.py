"""
Unit tests for notification data models.

Tests Pydantic validation, defaults and serialization for the
notification-related models.
"""

import json
from uuid import uuid4

import pytest
from pydantic import ValidationError

from src.models.notification import (
    NotificationChannel,
    NotificationSettings,
    PushSubscriptionRequest,
    PushTestRequest,
    RealtimeNotification,
    RealtimeNotificationType,
    TriggerOutcomeEvent,
)


class TestNotificationEnums:
    """Test notification enum definitions."""

    def test_channel_values(self):
        """Verify all channels are defined."""
        assert {channel.value for channel in NotificationChannel} == {
            "slack",
            "push",
            "realtime",
            "email",
            "whatsapp",
            "telegram",
            "sms",
        }


class TestNotificationSettings:
    """Test NotificationSettings defaults and validation."""

    def test_defaults(self):
        """Test defaults for a user who never saved settings."""
        settings = NotificationSettings()

        assert settings.email_enabled is True
        assert settings.channel_flags(NotificationChannel.EMAIL) == (True, True, True)
        for channel in (
            NotificationChannel.WHATSAPP,
            NotificationChannel.TELEGRAM,
            NotificationChannel.SMS,
            NotificationChannel.PUSH,
        ):
            assert settings.channel_flags(channel) == (False, False, True)
        assert settings.slack_webhook_url is None
        assert settings.total_recipients() == 0

    def test_slack_url_must_use_slack_prefix(self):
        with pytest.raises(ValidationError):
            NotificationSettings(slack_webhook_url="https://example.com/hook")

    def test_blank_slack_url_clears(self):
        assert NotificationSettings(slack_webhook_url="   ").slack_webhook_url is None

    def test_total_recipients_spans_channels(self):
        settings = NotificationSettings(
            email_recipients=["a@example.com"],
            whatsapp_numbers=["+15550001"],
            telegram_chat_ids=["42"],
            sms_numbers=["+15550002", "+15550003"],
        )

        assert settings.total_recipients() == 5

    def test_channel_flags_rejects_non_settings_channel(self):
        with pytest.raises(ValueError):
            NotificationSettings().channel_flags(NotificationChannel.SLACK)


class TestPushModels:
    """Test push request models."""

    def test_subscription_requires_keys(self):
        """Test that a subscription without keys is rejected."""
        with pytest.raises(ValidationError):
            PushSubscriptionRequest(endpoint="https://push.example.com/abc")

        with pytest.raises(ValidationError):
            PushSubscriptionRequest(
                endpoint="https://push.example.com/abc", keys={"p256dh": "key"}
            )

    def test_test_request_defaults(self):
        request = PushTestRequest()

        assert request.title == "Test"
        assert request.body == "This is a test notification"


class TestRealtimeNotification:
    """Test realtime frame serialization."""

    def test_sse_data_omits_empty_title(self):
        frame = json.loads(
            RealtimeNotification(
                type=RealtimeNotificationType.CONNECTED,
                message="Real-time notifications connected",
            ).to_sse_data()
        )

        assert frame["type"] == "connected"
        assert "title" not in frame
        assert "timestamp" in frame


class TestTriggerOutcomeEvent:
    """Test TriggerOutcomeEvent validation."""

    def test_negative_response_time_rejected(self):
        with pytest.raises(ValidationError):
            TriggerOutcomeEvent(
                callback_id=uuid4(),
                callback_name="Deploy hook",
                callback_url="https://api.example.com/deploy",
                success=True,
                response_time=-1,
                user_id=uuid4(),
                user_email="owner@example.com",
            )
