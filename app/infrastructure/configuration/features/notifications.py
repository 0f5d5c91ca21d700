"""Notification feature settings.

Channel switches and queue names, retention, per-user rate limits, batch
sizing and scheduling offsets for the notification engine.
"""

from typing import Dict, List

from pydantic import BaseModel, Field, field_validator

from infrastructure.configuration.base import FeatureSettings


class NotificationChannelSettings(FeatureSettings):
    """Channel enable flags, queue names and lane sizing.

    Environment Variables:
        NOTIFICATIONS_EMAIL_ENABLED: Enable the e-mail channel (default: True)
        NOTIFICATIONS_SMS_ENABLED: Enable the SMS channel (default: False)
        NOTIFICATIONS_PUSH_ENABLED: Enable the push channel (default: False)
        NOTIFICATIONS_DATABASE_ENABLED: Enable the in-app channel (default: True)
        NOTIFICATIONS_CHANNEL_QUEUES: JSON object channel -> queue name
        NOTIFICATIONS_LANE_QUEUES: JSON object lane -> queue name
        NOTIFICATIONS_LANE_WORKERS: JSON object lane -> worker pool size
        NOTIFICATIONS_LANE_QUOTAS: JSON object lane -> items taken per round

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        if settings.notification_channels.sms_enabled:
            # Register the SMS channel...
        ```
    """

    email_enabled: bool = Field(
        default=True,
        alias="NOTIFICATIONS_EMAIL_ENABLED",
        description="Enable e-mail delivery",
    )
    sms_enabled: bool = Field(
        default=False,
        alias="NOTIFICATIONS_SMS_ENABLED",
        description="Enable SMS delivery",
    )
    push_enabled: bool = Field(
        default=False,
        alias="NOTIFICATIONS_PUSH_ENABLED",
        description="Enable push delivery",
    )
    database_enabled: bool = Field(
        default=True,
        alias="NOTIFICATIONS_DATABASE_ENABLED",
        description="Enable in-app (database) delivery",
    )
    channel_queues: Dict[str, str] = Field(
        default_factory=lambda: {
            "email": "emails",
            "sms": "sms",
            "push": "push",
            "database": "notifications",
        },
        alias="NOTIFICATIONS_CHANNEL_QUEUES",
        description="Queue name per channel (normal lane)",
    )
    lane_queues: Dict[str, str] = Field(
        default_factory=lambda: {
            "urgent": "notifications-urgent",
            "high": "notifications-high",
            "normal": "notifications",
            "low": "notifications-low",
        },
        alias="NOTIFICATIONS_LANE_QUEUES",
        description="Queue name per priority lane",
    )
    lane_workers: Dict[str, int] = Field(
        default_factory=lambda: {"urgent": 4, "high": 3, "normal": 2, "low": 1},
        alias="NOTIFICATIONS_LANE_WORKERS",
        description="Worker pool size per lane",
    )
    lane_quotas: Dict[str, int] = Field(
        default_factory=lambda: {"urgent": 8, "high": 4, "normal": 2, "low": 1},
        alias="NOTIFICATIONS_LANE_QUOTAS",
        description="Items a lane may take per drain round (minimum share)",
    )

    @field_validator("lane_workers", "lane_quotas")
    @classmethod
    def validate_positive(cls, v: Dict[str, int]) -> Dict[str, int]:
        for lane, value in v.items():
            if value < 1:
                raise ValueError(f"lane '{lane}' must have a value of at least 1")
        return v

    def is_enabled(self, channel: str) -> bool:
        """Return the enable flag for a channel name."""
        return bool(getattr(self, f"{channel}_enabled", False))


class NotificationRetentionSettings(FeatureSettings):
    """Retention policy enforced by the cleanup job.

    Environment Variables:
        NOTIFICATIONS_FAILED_RETENTION_DAYS: Keep failed records (default: 7)
        NOTIFICATIONS_READ_RETENTION_DAYS: Keep read records (default: 30)
        NOTIFICATIONS_UNREAD_RETENTION_DAYS: Keep unread sent records (default: 90)
        NOTIFICATIONS_CLOSED_RETENTION_DAYS: Keep skipped/expired/cancelled (default: 7)
        NOTIFICATIONS_CLEANUP_BATCH_SIZE: Records deleted per run (default: 1000)
        NOTIFICATIONS_CLEANUP_THRESHOLD: Old-record count that makes cleanup
            necessary (default: 1000)
        NOTIFICATIONS_STATISTICS_TTL_SECONDS: Statistics cache TTL (default: 6h)
    """

    failed_days: int = Field(default=7, alias="NOTIFICATIONS_FAILED_RETENTION_DAYS")
    read_days: int = Field(default=30, alias="NOTIFICATIONS_READ_RETENTION_DAYS")
    unread_days: int = Field(default=90, alias="NOTIFICATIONS_UNREAD_RETENTION_DAYS")
    closed_days: int = Field(default=7, alias="NOTIFICATIONS_CLOSED_RETENTION_DAYS")
    batch_size: int = Field(default=1000, alias="NOTIFICATIONS_CLEANUP_BATCH_SIZE")
    cleanup_threshold: int = Field(
        default=1000, alias="NOTIFICATIONS_CLEANUP_THRESHOLD"
    )
    statistics_ttl_seconds: int = Field(
        default=21600, alias="NOTIFICATIONS_STATISTICS_TTL_SECONDS"
    )


class RateLimit(BaseModel):
    """Per-user sending limits for one channel or notification type."""

    per_hour: int
    per_day: int


class NotificationRateLimitSettings(FeatureSettings):
    """Per-user rate limits.

    Environment Variables:
        NOTIFICATIONS_RATE_LIMIT_BACKEND: 'memory' (one process) or 'redis'
            (shared through ElastiCache by every instance; default: memory)
        NOTIFICATIONS_RATE_LIMITS: JSON object mapping a channel or
            notification type to {per_hour, per_day}

    Defaults:
        sms                   5/h, 20/day
        booking_reminder      2/h,  5/day
        consultation_reminder 3/h, 10/day
        payment_reminder      1/h,  3/day
    """

    backend: str = Field(default="memory", alias="NOTIFICATIONS_RATE_LIMIT_BACKEND")
    limits: Dict[str, RateLimit] = Field(
        default_factory=lambda: {
            "sms": RateLimit(per_hour=5, per_day=20),
            "booking_reminder": RateLimit(per_hour=2, per_day=5),
            "consultation_reminder": RateLimit(per_hour=3, per_day=10),
            "payment_reminder": RateLimit(per_hour=1, per_day=3),
        },
        alias="NOTIFICATIONS_RATE_LIMITS",
    )

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in ("memory", "redis"):
            raise ValueError(f"Unsupported rate limit backend: {v}")
        return v


class NotificationBatchSettings(FeatureSettings):
    """Batch, sweep and pacing configuration.

    Environment Variables:
        NOTIFICATIONS_BATCH_SIZE: Pending notifications per batch (default: 50)
        NOTIFICATIONS_RETRY_BATCH_SIZE: Failed notifications per retry batch (default: 25)
        NOTIFICATIONS_SWEEP_BATCH_SIZE: Notifications per sweep run (default: 100)
        NOTIFICATIONS_INTER_ITEM_DELAY_MS: Delay between items in a group (default: 50)
        NOTIFICATIONS_INTER_GROUP_DELAY_MS: Delay between groups (default: 200)
        NOTIFICATIONS_BATCH_DEDUP_SECONDS: Window in which an identical batch
            is rejected (default: 300)
        NOTIFICATIONS_FAILED_RETRY_COOLDOWN_MINUTES: Minimum age of a failed
            attempt before it is retried (default: 30)
        NOTIFICATIONS_BACKLOG_RATIO: Fill ratio that signals backlog (default: 0.8)
    """

    batch_size: int = Field(default=50, alias="NOTIFICATIONS_BATCH_SIZE")
    retry_batch_size: int = Field(default=25, alias="NOTIFICATIONS_RETRY_BATCH_SIZE")
    sweep_batch_size: int = Field(default=100, alias="NOTIFICATIONS_SWEEP_BATCH_SIZE")
    inter_item_delay_ms: int = Field(
        default=50, alias="NOTIFICATIONS_INTER_ITEM_DELAY_MS"
    )
    inter_group_delay_ms: int = Field(
        default=200, alias="NOTIFICATIONS_INTER_GROUP_DELAY_MS"
    )
    dedup_window_seconds: int = Field(
        default=300, alias="NOTIFICATIONS_BATCH_DEDUP_SECONDS"
    )
    failed_retry_cooldown_minutes: int = Field(
        default=30, alias="NOTIFICATIONS_FAILED_RETRY_COOLDOWN_MINUTES"
    )
    backlog_ratio: float = Field(default=0.8, alias="NOTIFICATIONS_BACKLOG_RATIO")
    large_batch_threshold: int = Field(
        default=50, alias="NOTIFICATIONS_LARGE_BATCH_THRESHOLD"
    )
    sweep_rerun_minutes: int = Field(
        default=5, alias="NOTIFICATIONS_SWEEP_RERUN_MINUTES"
    )
    cleanup_rerun_minutes: int = Field(
        default=60, alias="NOTIFICATIONS_CLEANUP_RERUN_MINUTES"
    )
    post_batch_cleanup_minutes: int = Field(
        default=30, alias="NOTIFICATIONS_POST_BATCH_CLEANUP_MINUTES"
    )


class NotificationSchedulingSettings(FeatureSettings):
    """Offsets and windows used when scheduling and validating notifications.

    Environment Variables:
        NOTIFICATIONS_BOOKING_REMINDER_HOURS: JSON list (default: [24, 2])
        NOTIFICATIONS_CONSULTATION_REMINDER_HOURS: JSON list (default: [24, 1])
        NOTIFICATIONS_STARTING_SOON_MINUTES: Lead of the starting-soon notice (15)
        NOTIFICATIONS_PAYMENT_REMINDER_HOURS: Hours before the due date ([72, 24, 0])
        NOTIFICATIONS_PAYMENT_DUE_DAYS_BEFORE: Due date offset from the event (1)
        NOTIFICATIONS_OVERDUE_WINDOW_HOURS: Hours before the event when an
            unpaid booking becomes overdue (48)
        NOTIFICATIONS_OVERDUE_DEDUP_HOURS: Suppress repeat overdue notices (24)
        NOTIFICATIONS_FOLLOW_UP_HOURS: Hours after the event (24)
        NOTIFICATIONS_GRACE_MINUTES: Grace window after the event (60)
        NOTIFICATIONS_REMINDER_TOLERANCE_MINUTES: Allowed drift of a reminder (60)
        NOTIFICATIONS_MIN_REMINDER_LEAD_MINUTES: Minimum lead for booking reminders (15)
        NOTIFICATIONS_STALE_AFTER_MINUTES: Overdue pending age considered stale (60)
        NOTIFICATIONS_DEFAULT_CHANNELS: JSON list used when a user has no
            preference (default: ["email", "database"])
    """

    booking_reminder_hours: List[int] = Field(
        default_factory=lambda: [24, 2],
        alias="NOTIFICATIONS_BOOKING_REMINDER_HOURS",
    )
    consultation_reminder_hours: List[int] = Field(
        default_factory=lambda: [24, 1],
        alias="NOTIFICATIONS_CONSULTATION_REMINDER_HOURS",
    )
    starting_soon_minutes: int = Field(
        default=15, alias="NOTIFICATIONS_STARTING_SOON_MINUTES"
    )
    payment_reminder_hours: List[int] = Field(
        default_factory=lambda: [72, 24, 0],
        alias="NOTIFICATIONS_PAYMENT_REMINDER_HOURS",
    )
    payment_due_days_before: int = Field(
        default=1, alias="NOTIFICATIONS_PAYMENT_DUE_DAYS_BEFORE"
    )
    overdue_window_hours: int = Field(
        default=48, alias="NOTIFICATIONS_OVERDUE_WINDOW_HOURS"
    )
    overdue_dedup_hours: int = Field(
        default=24, alias="NOTIFICATIONS_OVERDUE_DEDUP_HOURS"
    )
    follow_up_hours: int = Field(default=24, alias="NOTIFICATIONS_FOLLOW_UP_HOURS")
    grace_minutes: int = Field(default=60, alias="NOTIFICATIONS_GRACE_MINUTES")
    reminder_tolerance_minutes: int = Field(
        default=60, alias="NOTIFICATIONS_REMINDER_TOLERANCE_MINUTES"
    )
    min_reminder_lead_minutes: int = Field(
        default=15, alias="NOTIFICATIONS_MIN_REMINDER_LEAD_MINUTES"
    )
    stale_after_minutes: int = Field(
        default=60, alias="NOTIFICATIONS_STALE_AFTER_MINUTES"
    )
    default_channels: List[str] = Field(
        default_factory=lambda: ["email", "database"],
        alias="NOTIFICATIONS_DEFAULT_CHANNELS",
    )
