"""Notification record store settings."""

from pydantic import Field, field_validator

from infrastructure.configuration.base import InfrastructureSettings


class NotificationStoreSettings(InfrastructureSettings):
    """Backend selection for the notification record store.

    Environment Variables:
        NOTIFICATIONS_STORE_BACKEND: 'memory' or 'dynamodb' (default: memory)
        NOTIFICATIONS_TABLE_NAME: DynamoDB table name for notification records
        NOTIFICATIONS_TTL_DAYS: DynamoDB TTL applied to every record (default: 120)

    The DynamoDB backend expects these global secondary indexes:
        - status-scheduled_at-index (status, scheduled_at)
        - type_channel-created_at-index (type_channel, created_at)
        - idempotency_key-index (idempotency_key)
        - business_ref-index (business_ref)
    """

    backend: str = Field(
        default="memory",
        alias="NOTIFICATIONS_STORE_BACKEND",
        description="Notification store backend: 'memory' or 'dynamodb'",
    )
    table_name: str = Field(
        default="notifications",
        alias="NOTIFICATIONS_TABLE_NAME",
        description="DynamoDB table name for notification records",
    )
    ttl_days: int = Field(
        default=120,
        alias="NOTIFICATIONS_TTL_DAYS",
        description="Safety-net TTL for records in DynamoDB (days)",
    )

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in ("memory", "dynamodb"):
            raise ValueError(f"Unsupported notification store backend: {v}")
        return v
