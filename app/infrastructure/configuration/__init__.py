"""Infrastructure configuration module - public API.

Centralized configuration for the notification engine using Pydantic
BaseSettings with domain-based organization.

Exports:
    Settings: Main settings class (for testing/overrides)
    RetryPolicyConfig: Retry policy model (for testing)

Example:
    ```python
    from infrastructure.services import get_settings

    settings = get_settings()

    retention_days = settings.notification_retention.failed_days
    sms_enabled = settings.notification_channels.sms_enabled
    ```
"""

from infrastructure.configuration.settings import Settings
from infrastructure.configuration.infrastructure.retry import RetryPolicyConfig

__all__ = ["Settings", "RetryPolicyConfig"]
