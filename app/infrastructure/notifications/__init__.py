"""Channel delivery layer.

Turns "send this rendered message to this recipient over channel X" into a
typed OperationResult. Channels enforce enable flags, user preferences,
recipient validation, rate limits and circuit breaking; they never retry.
Retry decisions belong to the caller.

Usage:
    from infrastructure.notifications import (
        EmailChannel,
        LogEmailProvider,
        Recipient,
        RenderedMessage,
        DeliveryMetadata,
    )

    channel = EmailChannel(LogEmailProvider(), clock)
    result = channel.send(
        Recipient(user_id="u-1", email="user@example.com"),
        RenderedMessage(subject="Reminder", body="See you tomorrow"),
        DeliveryMetadata(
            notification_id="n-1",
            notification_type="booking_reminder",
            channel="email",
        ),
    )
    if result.is_transient:
        ...
"""

from infrastructure.notifications.channels import (
    EmailChannel,
    InAppChannel,
    NotificationChannel,
    PushChannel,
    SMSChannel,
)
from infrastructure.notifications.models import (
    DeliveryMetadata,
    InboxEntry,
    Recipient,
    RenderedMessage,
)
from infrastructure.notifications.preferences import (
    DeviceTokenRegistry,
    InMemoryDeviceTokenRegistry,
    InMemoryPreferenceProvider,
    PreferenceProvider,
)
from infrastructure.notifications.providers import (
    EmailProvider,
    InboxWriter,
    InMemoryInbox,
    LogEmailProvider,
    LogPushProvider,
    LogSmsProvider,
    PushProvider,
    SmsProvider,
)
from infrastructure.notifications.rate_limiter import (
    InMemoryRateLimiter,
    RateLimiter,
    RedisRateLimiter,
    build_rate_limiter,
)

__all__ = [
    # Models
    "Recipient",
    "RenderedMessage",
    "DeliveryMetadata",
    "InboxEntry",
    # Channels
    "NotificationChannel",
    "EmailChannel",
    "SMSChannel",
    "PushChannel",
    "InAppChannel",
    # Providers
    "EmailProvider",
    "SmsProvider",
    "PushProvider",
    "InboxWriter",
    "LogEmailProvider",
    "LogSmsProvider",
    "LogPushProvider",
    "InMemoryInbox",
    # Preferences
    "PreferenceProvider",
    "InMemoryPreferenceProvider",
    "DeviceTokenRegistry",
    "InMemoryDeviceTokenRegistry",
    # Rate limits
    "RateLimiter",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    "build_rate_limiter",
]
