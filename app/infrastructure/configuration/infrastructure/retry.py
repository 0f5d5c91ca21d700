"""Retry policy settings for notification delivery and jobs."""

from typing import Dict, List

from pydantic import BaseModel, Field, field_validator

from infrastructure.configuration.base import InfrastructureSettings


class RetryPolicyConfig(BaseModel):
    """Retry behaviour for one job type or channel.

    Attributes:
        max_attempts: Maximum delivery attempts, including the first one
        backoff_seconds: Ordered delays between attempts; the last entry is
            reused when attempts outnumber entries
        retry_until_seconds: Hard deadline measured from the first attempt
        timeout_seconds: Per-send (or per-run, for jobs) timeout
    """

    max_attempts: int = 3
    backoff_seconds: List[int] = Field(default_factory=lambda: [30, 300, 1800])
    retry_until_seconds: int = 7200
    timeout_seconds: int = 60

    @field_validator("backoff_seconds")
    @classmethod
    def validate_backoff(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("backoff_seconds must contain at least one delay")
        if any(delay < 0 for delay in v):
            raise ValueError("backoff_seconds must be non-negative")
        if any(later < earlier for earlier, later in zip(v, v[1:])):
            raise ValueError("backoff_seconds must be non-decreasing")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be at least 1")
        return v


def _default_policies() -> Dict[str, RetryPolicyConfig]:
    return {
        "default": RetryPolicyConfig(
            max_attempts=3,
            backoff_seconds=[30, 300, 1800],
            retry_until_seconds=7200,
            timeout_seconds=60,
        ),
        "email": RetryPolicyConfig(
            max_attempts=3,
            backoff_seconds=[60, 300, 900],
            retry_until_seconds=7200,
            timeout_seconds=60,
        ),
        "sms": RetryPolicyConfig(
            max_attempts=3,
            backoff_seconds=[30, 120, 300],
            retry_until_seconds=3600,
            timeout_seconds=30,
        ),
        "push": RetryPolicyConfig(
            max_attempts=3,
            backoff_seconds=[30, 180, 600],
            retry_until_seconds=7200,
            timeout_seconds=45,
        ),
        "database": RetryPolicyConfig(
            max_attempts=3,
            backoff_seconds=[30, 300, 1800],
            retry_until_seconds=7200,
            timeout_seconds=30,
        ),
        "booking_reminder": RetryPolicyConfig(
            max_attempts=3,
            backoff_seconds=[30, 300, 900],
            retry_until_seconds=7200,
            timeout_seconds=60,
        ),
        "urgent": RetryPolicyConfig(
            max_attempts=2,
            backoff_seconds=[30, 60],
            retry_until_seconds=7200,
            timeout_seconds=30,
        ),
        "batch": RetryPolicyConfig(
            max_attempts=2,
            backoff_seconds=[300, 900],
            retry_until_seconds=7200,
            timeout_seconds=600,
        ),
        "overdue": RetryPolicyConfig(
            max_attempts=3,
            backoff_seconds=[60, 300, 900],
            retry_until_seconds=7200,
            timeout_seconds=300,
        ),
        "cleanup": RetryPolicyConfig(
            max_attempts=2,
            backoff_seconds=[300, 900],
            retry_until_seconds=7200,
            timeout_seconds=900,
        ),
    }


class NotificationRetrySettings(InfrastructureSettings):
    """Retry configuration for notification delivery.

    Environment Variables:
        NOTIFICATIONS_RETRY_POLICIES: JSON object mapping a job type or channel
            name to {max_attempts, backoff_seconds, retry_until_seconds,
            timeout_seconds}. Entries replace the built-in policy of the same
            name; omitted names keep their defaults.
        NOTIFICATIONS_CLAIM_LEASE_SECONDS: How long a notification may stay in
            'sending' before the sweeper releases it (default: 300s)
        NOTIFICATIONS_IDEMPOTENCY_BUCKET_SECONDS: Width of the time bucket used
            in scheduling idempotency keys (default: 3600s)
        NOTIFICATIONS_DISPATCH_RESERVATION_SECONDS: TTL of the in-flight
            dispatch reservation (default: 300s)

    Built-in policies (max attempts / backoff / deadline / timeout):
        email            3 / [60, 300, 900]  / 2h / 60s
        sms              3 / [30, 120, 300]  / 1h / 30s
        push             3 / [30, 180, 600]  / 2h / 45s
        database         3 / [30, 300, 1800] / 2h / 30s
        booking_reminder 3 / [30, 300, 900]  / 2h / 60s
        urgent           2 / [30, 60]        / 2h / 30s
        batch            2 / [300, 900]      / -  / 600s
        overdue          3 / [60, 300, 900]  / -  / 300s
        cleanup          2 / [300, 900]      / -  / 900s

    The batch, overdue and cleanup policies apply to the scheduled jobs: a
    run that raises is rerun after the backoff, up to max_attempts runs, and
    timeout_seconds is the time budget of one run.

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        sms_policy = settings.notification_retry.policies["sms"]
        ```
    """

    policies: Dict[str, RetryPolicyConfig] = Field(
        default_factory=_default_policies,
        alias="NOTIFICATIONS_RETRY_POLICIES",
        description="Retry policy per job type or channel",
    )
    claim_lease_seconds: int = Field(
        default=300,
        alias="NOTIFICATIONS_CLAIM_LEASE_SECONDS",
        description="Maximum time a notification may stay claimed (seconds)",
    )
    idempotency_bucket_seconds: int = Field(
        default=3600,
        alias="NOTIFICATIONS_IDEMPOTENCY_BUCKET_SECONDS",
        description="Time bucket width for scheduling idempotency keys (seconds)",
    )
    dispatch_reservation_seconds: int = Field(
        default=300,
        alias="NOTIFICATIONS_DISPATCH_RESERVATION_SECONDS",
        description="TTL of the in-flight dispatch reservation (seconds)",
    )

    @field_validator("policies")
    @classmethod
    def merge_with_defaults(
        cls, v: Dict[str, RetryPolicyConfig]
    ) -> Dict[str, RetryPolicyConfig]:
        """Keep built-in policies that an override does not mention."""
        merged = _default_policies()
        merged.update(v)
        return merged
