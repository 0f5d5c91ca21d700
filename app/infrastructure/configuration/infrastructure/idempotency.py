"""Idempotency infrastructure settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class IdempotencySettings(InfrastructureSettings):
    """Idempotency cache configuration for suppressing duplicate dispatch.

    Environment Variables:
        IDEMPOTENCY_BACKEND: 'memory' (single instance) or 'dynamodb' (shared)
        IDEMPOTENCY_TABLE_NAME: DynamoDB table holding idempotency keys
        IDEMPOTENCY_TTL_SECONDS: Default time-to-live for cache entries (1h)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        ttl = settings.idempotency.IDEMPOTENCY_TTL_SECONDS
        ```
    """

    IDEMPOTENCY_BACKEND: str = Field(default="memory", alias="IDEMPOTENCY_BACKEND")
    IDEMPOTENCY_TABLE_NAME: str = Field(
        default="notifications_idempotency", alias="IDEMPOTENCY_TABLE_NAME"
    )
    IDEMPOTENCY_TTL_SECONDS: int = Field(default=3600, alias="IDEMPOTENCY_TTL_SECONDS")
