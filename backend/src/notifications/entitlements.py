"""
Tier gating for notification settings.

WhatsApp and SMS need a paid tier, and every tier caps the combined number of
notification recipients. The write path rejects violations; the read and
dispatch paths force the gated channels off for Free accounts regardless of
what is stored.
"""

from src.models.notification import (
    PAID_CHANNELS,
    TIER_RECIPIENT_LIMITS,
    NotificationSettings,
    UserTier,
)
from src.notifications.exceptions import ChannelNotEntitledError, RecipientLimitExceededError


def has_paid_subscription(tier: UserTier) -> bool:
    return tier != UserTier.FREE


def recipient_limit(tier: UserTier) -> int:
    """Combined recipient cap for a tier; -1 means unlimited."""
    return TIER_RECIPIENT_LIMITS[tier]


def subscription_required(tier: UserTier) -> dict[str, bool]:
    """Which gated channels the tier would have to upgrade for."""
    paid = has_paid_subscription(tier)
    return {channel.value: not paid for channel in sorted(PAID_CHANNELS, key=lambda c: c.value)}


def apply_tier_gating(settings: NotificationSettings, tier: UserTier) -> NotificationSettings:
    """Return settings with paid-only channels switched off for Free accounts."""
    if has_paid_subscription(tier):
        return settings
    return settings.model_copy(update={"whatsapp_enabled": False, "sms_enabled": False})


def enforce_settings_entitlements(settings: NotificationSettings, tier: UserTier) -> None:
    """
    Validate a settings update against the user's tier.

    Raises:
        ChannelNotEntitledError: Free account enabling WhatsApp or SMS
        RecipientLimitExceededError: Too many recipients for the tier
    """
    if not has_paid_subscription(tier) and (settings.whatsapp_enabled or settings.sms_enabled):
        raise ChannelNotEntitledError("WhatsApp and SMS notifications require a paid subscription")

    limit = recipient_limit(tier)
    if limit != -1 and settings.total_recipients() > limit:
        raise RecipientLimitExceededError(limit)
