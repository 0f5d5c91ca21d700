"""Unit tests for the per-user sliding-window rate limiters."""

from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError  # type: ignore

from infrastructure.clients.aws import ElastiCacheClient
from infrastructure.configuration import Settings
from infrastructure.configuration.features import (
    NotificationRateLimitSettings,
    RateLimit,
)
from infrastructure.notifications import (
    InMemoryRateLimiter,
    RedisRateLimiter,
    build_rate_limiter,
)
from tests.factories import FakeSortedSetRedis

pytestmark = pytest.mark.unit

LIMITS = {
    "sms": RateLimit(per_hour=5, per_day=20),
    "payment_reminder": RateLimit(per_hour=1, per_day=3),
}


@pytest.fixture
def redis_client():
    return FakeSortedSetRedis()


@pytest.fixture(params=["memory", "redis"])
def limiter(request, clock, redis_client):
    if request.param == "redis":
        return RedisRateLimiter(
            ElastiCacheClient("localhost", redis_client=redis_client), clock, LIMITS
        )
    return InMemoryRateLimiter(clock, LIMITS)


class TestRateLimiter:
    """Behaviour shared by both backends."""

    def test_unconfigured_keys_are_unlimited(self, limiter):
        for _ in range(10):
            result = limiter.acquire("user-1", ["email", "booking_confirmation"])
            assert result.is_success
            assert result.data is None

    def test_anonymous_sends_are_unlimited(self, limiter):
        for _ in range(3):
            assert limiter.acquire(None, ["sms", "payment_reminder"]).is_success

    def test_type_limit_applies_with_channel(self, limiter, clock):
        assert limiter.acquire("user-1", ["sms", "payment_reminder"]).is_success
        clock.advance(minutes=10)

        result = limiter.acquire("user-1", ["sms", "payment_reminder"])

        assert result.error_code == "RATE_LIMITED"
        assert result.is_transient
        assert result.retry_after == 50 * 60

    def test_denied_send_is_not_counted(self, limiter):
        limiter.acquire("user-1", ["sms", "payment_reminder"])
        limiter.acquire("user-1", ["sms", "payment_reminder"])
        for _ in range(4):
            assert limiter.acquire("user-1", ["sms"]).is_success
        assert not limiter.acquire("user-1", ["sms"]).is_success

    def test_events_older_than_a_day_are_forgotten(self, limiter, clock):
        for _ in range(3):
            limiter.acquire("user-1", ["payment_reminder"])
            clock.advance(hours=2)
        assert limiter.acquire("user-1", ["payment_reminder"]).retry_after is not None

        clock.advance(hours=20)

        assert limiter.acquire("user-1", ["payment_reminder"]).is_success

    def test_released_reservation_frees_the_slot(self, limiter):
        reservation = limiter.acquire("user-1", ["payment_reminder"]).data
        assert reservation is not None

        limiter.release("user-1", ["payment_reminder"], reservation)

        assert limiter.acquire("user-1", ["payment_reminder"]).is_success

    def test_release_without_reservation_is_ignored(self, limiter):
        limiter.acquire("user-1", ["payment_reminder"])
        limiter.release("user-1", ["payment_reminder"], None)
        limiter.release("user-1", ["payment_reminder"], "unknown")

        assert not limiter.acquire("user-1", ["payment_reminder"]).is_success


class TestRedisRateLimiter:
    def test_instances_sharing_a_cluster_share_the_limit(self, clock, redis_client):
        first, second = (
            RedisRateLimiter(
                ElastiCacheClient("localhost", redis_client=redis_client), clock, LIMITS
            )
            for _ in range(2)
        )

        admitted = sum(
            limiter.acquire("user-1", ["sms"]).is_success
            for _ in range(5)
            for limiter in (first, second)
        )

        assert admitted == 5
        assert redis_client.zcard("rate_limit:user-1:sms") == 5

    def test_windows_are_namespaced_and_expire(self, clock, redis_client):
        limiter = RedisRateLimiter(
            ElastiCacheClient("localhost", redis_client=redis_client),
            clock,
            LIMITS,
            key_prefix="test_limits",
        )

        limiter.acquire("user-1", ["sms", "payment_reminder"])

        assert set(redis_client.sets) == {
            "test_limits:user-1:sms",
            "test_limits:user-1:payment_reminder",
        }
        assert redis_client.expiries["test_limits:user-1:sms"] == 86400

    def test_unreachable_cluster_admits_the_send(self, clock):
        redis_client = MagicMock()
        redis_client.pipeline.return_value.execute.side_effect = RedisConnectionError(
            "refused"
        )
        limiter = RedisRateLimiter(
            ElastiCacheClient("localhost", redis_client=redis_client), clock, LIMITS
        )

        result = limiter.acquire("user-1", ["sms"])

        assert result.is_success
        assert result.data is None

    def test_failed_release_is_logged_not_raised(self, clock):
        redis_client = MagicMock()
        redis_client.pipeline.return_value.execute.side_effect = RedisConnectionError(
            "refused"
        )
        limiter = RedisRateLimiter(
            ElastiCacheClient("localhost", redis_client=redis_client), clock, LIMITS
        )

        limiter.release("user-1", ["sms"], "r-1")

        redis_client.pipeline.return_value.zrem.assert_called_once_with(
            "rate_limit:user-1:sms", "r-1"
        )


class TestBuildRateLimiter:
    def test_memory_backend_by_default(self, clock):
        limiter = build_rate_limiter(Settings(PREFIX="test"), clock)
        assert isinstance(limiter, InMemoryRateLimiter)

    def test_redis_backend(self, clock, redis_client):
        settings = Settings(
            PREFIX="test",
            notification_rate_limits=NotificationRateLimitSettings(
                NOTIFICATIONS_RATE_LIMIT_BACKEND="redis"
            ),
        )

        limiter = build_rate_limiter(
            settings, clock, ElastiCacheClient("localhost", redis_client=redis_client)
        )

        assert isinstance(limiter, RedisRateLimiter)
        assert limiter.acquire("user-1", ["sms"]).is_success
        assert redis_client.zcard("rate_limit:user-1:sms") == 1

    def test_unknown_backend_is_rejected(self):
        with pytest.raises(ValueError):
            NotificationRateLimitSettings(NOTIFICATIONS_RATE_LIMIT_BACKEND="memcached")
