"""
Prometheus metrics for notification delivery.

Tracks per-channel delivery outcomes, push subscription removals, live
realtime connections and callback trigger outcomes. Exposed at ``/metrics``.
"""

from prometheus_client import Counter, Gauge

# Delivery attempts by channel (slack, push, realtime) and outcome
notification_deliveries_total = Counter(
    "notification_deliveries_total",
    "Notification delivery attempts by channel and outcome",
    labelnames=["channel", "outcome"],
)

# Push subscriptions removed (expired, stale, unsubscribed)
push_subscriptions_deleted_total = Counter(
    "push_subscriptions_deleted_total",
    "Push subscriptions deleted by reason",
    labelnames=["reason"],
)

realtime_connections_active = Gauge(
    "realtime_connections_active",
    "Live server-sent-event connections held by this process",
)

callback_triggers_total = Counter(
    "callback_triggers_total",
    "Callback trigger executions by outcome",
    labelnames=["outcome"],
)
