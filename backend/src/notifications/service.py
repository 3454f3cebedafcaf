"""
Notification Orchestrator

Central coordination point for trigger outcome notifications. Handles:
- Loading the owner's settings and tier (defaults when never saved)
- Channel eligibility (enabled flag, outcome toggle, paid-tier gating)
- Concurrent, isolated delivery to Slack, Web Push and the realtime stream
- Removing push subscriptions the push service reports as gone
- The stale push subscription cleanup sweep

Dispatch is best effort and at most once per call: there is no retry and no
deduplication, so dispatching the same event twice attempts every channel
twice. ``dispatch`` never raises.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.config import Settings
from src.config import settings as default_settings
from src.models.notification import (
    PAID_CHANNELS,
    SETTINGS_CHANNELS,
    NotificationChannel,
    NotificationSettings,
    PushSubscription,
    RealtimeNotification,
    RealtimeNotificationType,
    TriggerOutcomeEvent,
    UserTier,
)
from src.notifications.context import ChannelContextBuilder
from src.notifications.entitlements import has_paid_subscription
from src.notifications.exceptions import (
    ChannelDeliveryError,
    SubscriptionExpired,
)
from src.notifications.push_client import PushClient
from src.notifications.realtime import RealtimeRegistry
from src.notifications.slack_client import SlackClient
from src.observability.metrics import (
    notification_deliveries_total,
    push_subscriptions_deleted_total,
)
from src.repositories.notification_repository import (
    RepositoryFactory,
    notification_repository_factory,
)

logger = structlog.get_logger(__name__)

ChannelSend = Callable[[], Awaitable[bool]]

# Channels that exist as settings but are delivered outside this service
SETTINGS_ONLY_CHANNELS = frozenset(
    {
        NotificationChannel.EMAIL,
        NotificationChannel.WHATSAPP,
        NotificationChannel.TELEGRAM,
        NotificationChannel.SMS,
    }
)


def build_realtime_notification(event: TriggerOutcomeEvent) -> RealtimeNotification:
    """Realtime frame describing a trigger outcome."""
    if event.success:
        notification_type = RealtimeNotificationType.WEBHOOK_SUCCESS
        title = "Webhook Triggered"
        message = f"{event.callback_name} executed successfully"
    else:
        notification_type = RealtimeNotificationType.WEBHOOK_FAILURE
        title = "Webhook Failed"
        message = f"{event.callback_name} failed"
        if event.error:
            message += f": {event.error}"

    return RealtimeNotification(
        type=notification_type,
        title=title,
        message=message,
        data={
            "callbackId": str(event.callback_id),
            "callbackName": event.callback_name,
            "callbackUrl": event.callback_url,
            "success": event.success,
            "statusCode": event.status_code,
            "responseTime": event.response_time,
            "error": event.error,
            "triggeredAt": event.triggered_at.isoformat(),
        },
    )


class NotificationOrchestrator:
    """
    Fans trigger outcomes out to the notification channels.

    Each collaborator is optional so the orchestrator can run with a subset of
    channels; a missing client simply means that channel is never attempted.
    """

    def __init__(
        self,
        repository_factory: RepositoryFactory,
        push_client: Optional[PushClient] = None,
        slack_client: Optional[SlackClient] = None,
        realtime_registry: Optional[RealtimeRegistry] = None,
        context_builder: Optional[ChannelContextBuilder] = None,
    ):
        """
        Initialize the orchestrator with channel clients.

        Args:
            repository_factory: Yields a session-scoped NotificationRepository per use
            push_client: Web Push client
            slack_client: Slack incoming-webhook client
            realtime_registry: Live connection registry for the realtime stream
            context_builder: Daily statistics builder (defaults to one over repository_factory)
        """
        self.repository_factory = repository_factory
        self.push_client = push_client
        self.slack_client = slack_client
        self.realtime_registry = realtime_registry
        self.context_builder = context_builder or ChannelContextBuilder(repository_factory)

    # =============================
    # Eligibility
    # =============================

    @staticmethod
    def eligible_channels(
        settings: NotificationSettings, tier: UserTier, success: bool
    ) -> set[NotificationChannel]:
        """
        Settings channels that should fire for an outcome.

        A channel fires when it is enabled and its toggle for the outcome is
        on. WhatsApp and SMS also need a paid tier, whatever the stored flags say.
        """
        paid = has_paid_subscription(tier)
        eligible = set()

        for channel in SETTINGS_CHANNELS:
            enabled, on_success, on_failure = settings.channel_flags(channel)
            if not enabled:
                continue
            if not (on_success if success else on_failure):
                continue
            if channel in PAID_CHANNELS and not paid:
                continue
            eligible.add(channel)

        return eligible

    # =============================
    # Dispatch
    # =============================

    async def dispatch(self, event: TriggerOutcomeEvent) -> dict[NotificationChannel, bool]:
        """
        Deliver a trigger outcome to every eligible channel.

        Args:
            event: Outcome of a completed trigger

        Returns:
            Delivered flag per attempted channel (empty when preconditions failed)
        """
        try:
            async with self.repository_factory() as repository:
                tier = await repository.get_user_tier(event.user_id)
                if tier is None:
                    logger.warning(
                        "Notification owner not found, skipping dispatch",
                        user_id=str(event.user_id),
                        callback_id=str(event.callback_id),
                    )
                    return {}

                settings = await repository.get_notification_settings(event.user_id)
                if settings is None:
                    settings = NotificationSettings(user_id=event.user_id)

                eligible = self.eligible_channels(settings, tier, event.success)

                subscription = None
                if NotificationChannel.PUSH in eligible and self.push_client is not None:
                    subscription = await repository.get_push_subscription(event.user_id)
        except Exception as e:
            logger.warning(
                "Could not load notification settings, skipping dispatch",
                user_id=str(event.user_id),
                callback_id=str(event.callback_id),
                error=str(e),
                exc_info=True,
            )
            return {}

        sends: dict[NotificationChannel, ChannelSend] = {}

        if settings.slack_webhook_url and self.slack_client is not None:
            webhook_url = settings.slack_webhook_url
            sends[NotificationChannel.SLACK] = lambda: self._send_slack(webhook_url, event)

        if subscription is not None:
            sends[NotificationChannel.PUSH] = lambda: self._send_push(subscription, event)

        if self.realtime_registry is not None:
            sends[NotificationChannel.REALTIME] = lambda: self._send_realtime(event)

        for channel in sorted(eligible & SETTINGS_ONLY_CHANNELS, key=lambda c: c.value):
            logger.debug(
                "Channel enabled but not delivered by the orchestrator",
                channel=channel.value,
                user_id=str(event.user_id),
            )

        channels = list(sends)
        results = await asyncio.gather(
            *(self._isolated_dispatch(channel, sends[channel], event) for channel in channels)
        )
        outcome = dict(zip(channels, results))

        logger.info(
            "Notification dispatched",
            user_id=str(event.user_id),
            callback_id=str(event.callback_id),
            success=event.success,
            channels={channel.value: delivered for channel, delivered in outcome.items()},
        )

        return outcome

    async def _isolated_dispatch(
        self,
        channel: NotificationChannel,
        send: ChannelSend,
        event: TriggerOutcomeEvent,
    ) -> bool:
        """
        Run one channel send inside its own failure boundary.

        Any exception is logged and turned into ``False``; it never reaches
        the other channels or the caller.
        """
        try:
            delivered = await send()
        except Exception as e:
            notification_deliveries_total.labels(channel=channel.value, outcome="failed").inc()
            logger.error(
                "Failed to send notification via channel",
                channel=channel.value,
                user_id=str(event.user_id),
                callback_id=str(event.callback_id),
                error=str(e),
                exc_info=True,
            )
            return False

        outcome = "delivered" if delivered else "skipped"
        notification_deliveries_total.labels(channel=channel.value, outcome=outcome).inc()
        return delivered

    async def _send_slack(self, webhook_url: str, event: TriggerOutcomeEvent) -> bool:
        context = await self.context_builder.build_context(event.user_id, event.triggered_at)

        if not await self.slack_client.send_webhook_notification(webhook_url, event, context):
            raise ChannelDeliveryError(
                NotificationChannel.SLACK, "Slack webhook did not accept the notification"
            )
        return True

    async def _send_push(self, subscription: PushSubscription, event: TriggerOutcomeEvent) -> bool:
        payload = self.push_client.build_outcome_payload(event)

        # Only a 404/410 touches the record; other push failures are logged by the caller
        try:
            await self.push_client.send_push(subscription, payload)
        except SubscriptionExpired:
            await self._retire_expired_subscription(subscription)
            raise

        return True

    async def _send_realtime(self, event: TriggerOutcomeEvent) -> bool:
        # No live connection is a silent no-op
        return await self.realtime_registry.send_to_user(
            event.user_id, build_realtime_notification(event)
        )

    async def _retire_expired_subscription(self, subscription: PushSubscription) -> None:
        """
        Remove a subscription the push service reported gone.

        The row is marked expired before it is deleted: if the delete fails,
        the mark survives and the cleanup sweep removes it later.
        """
        async with self.repository_factory() as repository:
            await repository.mark_push_subscription_expired(
                subscription.user_id, subscription.endpoint
            )
            deleted = await repository.delete_push_subscription(
                subscription.user_id, endpoint=subscription.endpoint
            )

        if deleted:
            push_subscriptions_deleted_total.labels(reason="expired").inc()
        logger.info(
            "Deleted expired push subscription",
            user_id=str(subscription.user_id),
            deleted=deleted,
        )

    # =============================
    # Maintenance
    # =============================

    async def cleanup_stale_subscriptions(self) -> dict[str, int]:
        """
        Delete push subscriptions marked expired by an earlier delivery.

        Dispatch deletes gone subscriptions as soon as the push service
        answers 404/410. This sweep removes the ones whose delete did not go
        through. Subscriptions that only saw transient failures are never
        touched.

        Returns:
            ``{"deleted": n}``
        """
        deleted = 0

        async with self.repository_factory() as repository:
            expired = await repository.list_push_subscriptions(expired_only=True)

            for subscription in expired:
                if await repository.delete_push_subscription(
                    subscription.user_id, endpoint=subscription.endpoint
                ):
                    deleted += 1
                    push_subscriptions_deleted_total.labels(reason="stale").inc()

        logger.info("Stale push subscription cleanup finished", marked=len(expired), deleted=deleted)

        return {"deleted": deleted}

    async def broadcast_system_notification(
        self, title: str, message: str, data: Optional[dict[str, Any]] = None
    ) -> int:
        """Send a system notification to every live realtime connection."""
        if self.realtime_registry is None:
            return 0

        delivered = await self.realtime_registry.broadcast(
            RealtimeNotification(
                type=RealtimeNotificationType.SYSTEM,
                title=title,
                message=message,
                data=data or {},
            )
        )

        logger.info("System notification broadcast", title=title, delivered=delivered)
        return delivered

    async def send_test_push(self, user_id: UUID, payload: dict[str, Any]) -> bool:
        """
        Send a user-supplied payload to the user's push subscription.

        Unlike ``dispatch`` this propagates failures so the caller can report
        them; an expired subscription is still deleted first.

        Returns:
            False if the user has no subscription

        Raises:
            SubscriptionExpired: Endpoint gone (the subscription has been deleted)
            PushDeliveryError: Other delivery failure
            ConfigurationError: VAPID keys missing
        """
        async with self.repository_factory() as repository:
            subscription = await repository.get_push_subscription(user_id)

        if subscription is None:
            return False

        try:
            await self.push_client.send_push(subscription, payload)
        except SubscriptionExpired:
            await self._retire_expired_subscription(subscription)
            raise

        return True


def create_notification_orchestrator(
    session_maker: async_sessionmaker,
    realtime_registry: Optional[RealtimeRegistry] = None,
    app_settings: Settings = default_settings,
) -> NotificationOrchestrator:
    """
    Build an orchestrator wired from application settings.

    Args:
        session_maker: Session factory; every repository use opens its own session
        realtime_registry: Process registry of live connections (None disables realtime)
        app_settings: Settings to read client configuration from
    """
    repository_factory = notification_repository_factory(session_maker)

    push_client = PushClient(
        vapid_private_key=app_settings.vapid_private_key,
        vapid_claims_email=app_settings.vapid_claims_email,
        test_mode=app_settings.notification_test_mode,
        timeout=app_settings.push_timeout_seconds,
        max_payload_bytes=app_settings.push_max_payload_bytes,
    )

    return NotificationOrchestrator(
        repository_factory=repository_factory,
        push_client=push_client,
        slack_client=SlackClient(timeout=app_settings.slack_timeout_seconds),
        realtime_registry=realtime_registry,
        context_builder=ChannelContextBuilder(
            repository_factory, timezone=app_settings.stats_timezone
        ),
    )
