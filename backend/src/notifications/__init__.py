"""
Notification fan-out for webhook trigger outcomes.

This package delivers outcome notifications across:
- Slack (incoming webhooks)
- Push (Web Push)
- Realtime (server-sent events to open dashboard tabs)

Email, WhatsApp, Telegram and SMS exist as tier-gated settings only.
"""

from src.notifications.realtime import RealtimeRegistry
from src.notifications.service import NotificationOrchestrator

__all__ = ["NotificationOrchestrator", "RealtimeRegistry"]
