"""Feature settings __init__ - exports all feature settings."""

from infrastructure.configuration.features.notifications import (
    NotificationBatchSettings,
    NotificationChannelSettings,
    NotificationRateLimitSettings,
    NotificationRetentionSettings,
    NotificationSchedulingSettings,
    RateLimit,
)

__all__ = [
    "NotificationBatchSettings",
    "NotificationChannelSettings",
    "NotificationRateLimitSettings",
    "NotificationRetentionSettings",
    "NotificationSchedulingSettings",
    "RateLimit",
]
