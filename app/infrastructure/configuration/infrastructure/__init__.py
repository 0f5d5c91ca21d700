"""Infrastructure settings __init__ - exports all infrastructure settings."""

from infrastructure.configuration.infrastructure.idempotency import IdempotencySettings
from infrastructure.configuration.infrastructure.retry import (
    NotificationRetrySettings,
    RetryPolicyConfig,
)
from infrastructure.configuration.infrastructure.store import NotificationStoreSettings

__all__ = [
    "IdempotencySettings",
    "NotificationRetrySettings",
    "NotificationStoreSettings",
    "RetryPolicyConfig",
]
