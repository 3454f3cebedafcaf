"""ORM models for users, callbacks, trigger logs and notification records."""

from src.orm.models import (
    CallbackLogORM,
    CallbackORM,
    NotificationSettingsORM,
    PushSubscriptionORM,
    User,
)

__all__ = [
    "CallbackLogORM",
    "CallbackORM",
    "NotificationSettingsORM",
    "PushSubscriptionORM",
    "User",
]
