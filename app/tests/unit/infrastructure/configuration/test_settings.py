"""Unit tests for infrastructure.configuration settings.

Tests cover:
- Settings aggregation and overrides
- Channel, batch and scheduling defaults
- Retry policy defaults, validation and override merging
"""

import pytest
from pydantic import ValidationError

from infrastructure.configuration import RetryPolicyConfig, Settings
from infrastructure.configuration.features import (
    NotificationBatchSettings,
    NotificationChannelSettings,
    NotificationRateLimitSettings,
    NotificationSchedulingSettings,
)
from infrastructure.configuration.infrastructure import (
    NotificationRetrySettings,
    NotificationStoreSettings,
)

pytestmark = pytest.mark.unit


class TestSettings:
    """Test suite for the Settings aggregator."""

    def test_sub_settings_are_instantiated(self):
        settings = Settings(PREFIX="test")

        assert isinstance(settings.notification_channels, NotificationChannelSettings)
        assert isinstance(settings.notification_retry, NotificationRetrySettings)
        assert isinstance(settings.notification_store, NotificationStoreSettings)

    def test_explicit_section_is_kept(self):
        channels = NotificationChannelSettings(NOTIFICATIONS_SMS_ENABLED=True)
        settings = Settings(PREFIX="test", notification_channels=channels)
        assert settings.notification_channels.sms_enabled is True

    @pytest.mark.parametrize("prefix,expected", [("", True), ("dev-", False)])
    def test_is_production(self, prefix, expected):
        assert Settings(PREFIX=prefix).is_production is expected

    @pytest.mark.parametrize("prefix,expected", [("", "production"), ("dev-", "dev")])
    def test_environment_name(self, prefix, expected):
        assert Settings(PREFIX=prefix).environment == expected


class TestChannelSettings:
    def test_defaults(self):
        channels = NotificationChannelSettings()
        assert channels.is_enabled("email")
        assert channels.is_enabled("database")
        assert not channels.is_enabled("sms")
        assert not channels.is_enabled("push")
        assert not channels.is_enabled("fax")
        assert channels.channel_queues["database"] == "notifications"
        assert channels.lane_queues["urgent"] == "notifications-urgent"

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATIONS_PUSH_ENABLED", "true")
        monkeypatch.setenv("NOTIFICATIONS_LANE_WORKERS", '{"urgent": 8, "low": 2}')

        channels = NotificationChannelSettings()

        assert channels.push_enabled is True
        assert channels.lane_workers == {"urgent": 8, "low": 2}

    def test_lane_sizes_must_be_positive(self):
        with pytest.raises(ValidationError):
            NotificationChannelSettings(NOTIFICATIONS_LANE_QUOTAS={"urgent": 0})


class TestFeatureDefaults:
    def test_batch_defaults(self):
        batches = NotificationBatchSettings()
        assert batches.batch_size == 50
        assert batches.retry_batch_size == 25
        assert batches.inter_item_delay_ms == 50
        assert batches.inter_group_delay_ms == 200

    def test_scheduling_defaults(self):
        scheduling = NotificationSchedulingSettings()
        assert scheduling.booking_reminder_hours == [24, 2]
        assert scheduling.payment_reminder_hours == [72, 24, 0]
        assert scheduling.default_channels == ["email", "database"]

    def test_rate_limit_defaults(self):
        limits = NotificationRateLimitSettings().limits
        assert limits["sms"].per_hour == 5
        assert limits["payment_reminder"].per_day == 3


class TestRetryPolicies:
    def test_built_in_policies(self):
        policies = NotificationRetrySettings().policies
        assert policies["sms"].backoff_seconds == [30, 120, 300]
        assert policies["sms"].retry_until_seconds == 3600
        assert policies["urgent"].max_attempts == 2
        assert policies["cleanup"].timeout_seconds == 900

    def test_override_keeps_other_defaults(self, monkeypatch):
        monkeypatch.setenv(
            "NOTIFICATIONS_RETRY_POLICIES",
            '{"email": {"max_attempts": 5, "backoff_seconds": [10, 20]}}',
        )

        policies = NotificationRetrySettings().policies

        assert policies["email"].max_attempts == 5
        assert policies["email"].backoff_seconds == [10, 20]
        assert policies["sms"].max_attempts == 3

    @pytest.mark.parametrize(
        "backoff", [[], [-1, 10], [300, 60]], ids=["empty", "negative", "decreasing"]
    )
    def test_invalid_backoff(self, backoff):
        with pytest.raises(ValidationError):
            RetryPolicyConfig(backoff_seconds=backoff)

    def test_max_attempts_at_least_one(self):
        with pytest.raises(ValidationError):
            RetryPolicyConfig(max_attempts=0)


class TestStoreSettings:
    def test_defaults(self):
        store = NotificationStoreSettings()
        assert store.backend == "memory"
        assert store.table_name == "notifications"
        assert store.ttl_days == 120
