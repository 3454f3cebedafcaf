"""
Shared fixtures for notification channel tests.

Provides trigger outcomes, push subscriptions and daily statistics used
across the push, Slack, realtime and orchestrator tests.
"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from src.models.notification import ChannelContext, PushSubscription, TriggerOutcomeEvent


@pytest.fixture
def sample_user_id():
    """Generate a sample user ID."""
    return uuid4()


@pytest.fixture
def success_event(sample_user_id):
    """
    Create a successful trigger outcome.

    The callback answered 200 in 120ms.
    """
    return TriggerOutcomeEvent(
        callback_id=uuid4(),
        callback_name="Deploy hook",
        callback_url="https://api.example.com/deploy",
        success=True,
        status_code=200,
        response_time=120,
        details="Status: 200, Response time: 120ms",
        triggered_at=datetime(2024, 3, 1, 12, 0, tzinfo=UTC),
        user_id=sample_user_id,
        user_email="owner@example.com",
    )


@pytest.fixture
def failure_event(sample_user_id):
    """
    Create a failed trigger outcome.

    The callback answered 500 in 1.5s.
    """
    return TriggerOutcomeEvent(
        callback_id=uuid4(),
        callback_name="Billing sync",
        callback_url="https://api.example.com/billing",
        success=False,
        status_code=500,
        response_time=1500,
        error="HTTP 500: Internal Server Error",
        triggered_at=datetime(2024, 3, 1, 12, 0, tzinfo=UTC),
        user_id=sample_user_id,
        user_email="owner@example.com",
    )


@pytest.fixture
def sample_push_subscription(sample_user_id):
    """Create a stored push subscription for the sample user."""
    return PushSubscription(
        user_id=sample_user_id,
        endpoint="https://fcm.googleapis.com/fcm/send/abc123xyz-device-token-0001",
        p256dh_key="BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM",
        auth_key="tBHItJI5svbpez7KI4CCXg",
    )


@pytest.fixture
def sample_context():
    """Daily statistics for message rendering."""
    return ChannelContext(total_triggers_today=12, success_rate=91.67, avg_response_time_ms=230.4)
