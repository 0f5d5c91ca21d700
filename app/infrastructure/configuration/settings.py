"""Top-level Settings object aggregating every configuration section."""

from typing import Dict, Type

from pydantic_settings import BaseSettings

from infrastructure.configuration.base import ENV_CONFIG
from infrastructure.configuration.features import (
    NotificationBatchSettings,
    NotificationChannelSettings,
    NotificationRateLimitSettings,
    NotificationRetentionSettings,
    NotificationSchedulingSettings,
)
from infrastructure.configuration.infrastructure import (
    IdempotencySettings,
    NotificationRetrySettings,
    NotificationStoreSettings,
)
from infrastructure.configuration.integrations import AwsSettings, ElastiCacheSettings

# Attribute name -> section class, in the order they are logged at startup
SECTIONS: Dict[str, Type[BaseSettings]] = {
    "aws": AwsSettings,
    "elasticache": ElastiCacheSettings,
    "notification_channels": NotificationChannelSettings,
    "notification_retention": NotificationRetentionSettings,
    "notification_rate_limits": NotificationRateLimitSettings,
    "notification_batches": NotificationBatchSettings,
    "notification_scheduling": NotificationSchedulingSettings,
    "notification_retry": NotificationRetrySettings,
    "notification_store": NotificationStoreSettings,
    "idempotency": IdempotencySettings,
}


class Settings(BaseSettings):
    """Notification engine settings.

    Sections not passed explicitly are loaded from the environment, so
    tests can override a single section:

        Settings(
            PREFIX="test",
            notification_channels=NotificationChannelSettings(
                NOTIFICATIONS_SMS_ENABLED=True
            ),
        )

    Environment Variables:
        PREFIX: Deployment prefix; empty in production
        LOG_LEVEL: Root log level (default: INFO)
        GIT_SHA: Commit deployed, reported by /version and in every log line
    """

    PREFIX: str = ""
    LOG_LEVEL: str = "INFO"
    GIT_SHA: str = "Unknown"

    aws: AwsSettings
    elasticache: ElastiCacheSettings
    notification_channels: NotificationChannelSettings
    notification_retention: NotificationRetentionSettings
    notification_rate_limits: NotificationRateLimitSettings
    notification_batches: NotificationBatchSettings
    notification_scheduling: NotificationSchedulingSettings
    notification_retry: NotificationRetrySettings
    notification_store: NotificationStoreSettings
    idempotency: IdempotencySettings

    model_config = ENV_CONFIG

    def __init__(self, **overrides):
        for name, section in SECTIONS.items():
            if name not in overrides:
                overrides[name] = section()
        super().__init__(**overrides)

    @property
    def is_production(self) -> bool:
        return not self.PREFIX

    @property
    def environment(self) -> str:
        """Deployment name used in log lines ("production" or the prefix)."""
        return self.PREFIX.strip("-_") or "production"
