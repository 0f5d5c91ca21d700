"""Per-user sliding-window rate limits for channel sends.

A send first reserves a slot against every applicable key (the channel,
then the notification type). The channel releases the reservation when
the provider did not accept the message, so only delivered messages use
up a user's quota.

Two backends:
    InMemoryRateLimiter: one process (development, tests)
    RedisRateLimiter: ElastiCache sorted sets shared by every instance
"""

import math
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import structlog
from redis.exceptions import RedisError  # type: ignore

from infrastructure.clients.aws import ElastiCacheClient
from infrastructure.clock import Clock
from infrastructure.configuration import Settings
from infrastructure.configuration.features import RateLimit
from infrastructure.operations import OperationResult

logger = structlog.get_logger()

HOUR = timedelta(hours=1)
DAY = timedelta(days=1)


def _limited(message: str, wait_seconds: float) -> OperationResult:
    return OperationResult.transient_error(
        message,
        error_code="RATE_LIMITED",
        retry_after=max(math.ceil(wait_seconds), 1),
    )


class RateLimiter(ABC):
    """Sliding-window limits keyed by (user, channel-or-type).

    Denials are transient with a ``retry_after`` that points at the moment
    the oldest counted send leaves the window.

    Args:
        clock: Time source
        limits: Channel or notification type -> RateLimit
    """

    def __init__(self, clock: Clock, limits: Dict[str, RateLimit]):
        self._clock = clock
        self._limits = limits

    def applicable(self, user_id: Optional[str], keys: List[str]) -> List[str]:
        if not user_id:
            return []
        return [key for key in keys if key in self._limits]

    @abstractmethod
    def acquire(self, user_id: Optional[str], keys: List[str]) -> OperationResult:
        """Reserve one send for the user if every configured key allows it.

        Args:
            user_id: User the send is counted against; None is never limited.
            keys: Channel name then notification type, in check order.

        Returns:
            Success carrying the reservation id (None when nothing applies),
            or a transient RATE_LIMITED result.
        """

    @abstractmethod
    def release(
        self, user_id: Optional[str], keys: List[str], reservation: Optional[str]
    ) -> None:
        """Give back a reservation for a send that was not delivered."""


class InMemoryRateLimiter(RateLimiter):
    """Process-local limiter; instances do not see each other's sends."""

    def __init__(self, clock: Clock, limits: Dict[str, RateLimit]):
        super().__init__(clock, limits)
        # (user, key) -> reservation id -> time, in insertion order
        self._events: Dict[Tuple[str, str], Dict[str, datetime]] = {}
        self._lock = threading.Lock()

    def _window(self, user_id: str, key: str, now: datetime) -> List[datetime]:
        events = self._events.setdefault((user_id, key), {})
        for reservation in [r for r, ts in events.items() if ts <= now - DAY]:
            del events[reservation]
        return list(events.values())

    def _denial(
        self, user_id: str, key: str, now: datetime
    ) -> Optional[OperationResult]:
        limit = self._limits[key]
        events = self._window(user_id, key, now)

        last_hour = [ts for ts in events if ts > now - HOUR]
        if len(last_hour) >= limit.per_hour:
            return _limited(
                f"Hourly limit of {limit.per_hour} reached for {key}",
                (min(last_hour) + HOUR - now).total_seconds(),
            )
        if len(events) >= limit.per_day:
            return _limited(
                f"Daily limit of {limit.per_day} reached for {key}",
                (min(events) + DAY - now).total_seconds(),
            )
        return None

    def acquire(self, user_id: Optional[str], keys: List[str]) -> OperationResult:
        applicable = self.applicable(user_id, keys)
        if not applicable:
            return OperationResult.success()

        with self._lock:
            now = self._clock.now()
            for key in applicable:
                denial = self._denial(user_id, key, now)
                if denial is not None:
                    logger.info(
                        "rate_limit_exceeded",
                        user_id=user_id,
                        key=key,
                        retry_after=denial.retry_after,
                    )
                    return denial
            reservation = uuid.uuid4().hex
            for key in applicable:
                self._events[(user_id, key)][reservation] = now
        return OperationResult.success(data=reservation)

    def release(
        self, user_id: Optional[str], keys: List[str], reservation: Optional[str]
    ) -> None:
        if reservation is None:
            return
        with self._lock:
            for key in self.applicable(user_id, keys):
                self._events.get((user_id, key), {}).pop(reservation, None)


class RedisRateLimiter(RateLimiter):
    """Limiter whose windows live in ElastiCache sorted sets.

    One sorted set per (user, key) holds reservation ids scored by send
    time. A reservation is added first and counted second inside one
    MULTI/EXEC, then removed again if it overshoots a limit. Concurrent
    instances can therefore over-deny briefly but never over-admit.

    When Redis is unreachable sends are admitted and the error is logged;
    the breaker and retry policy still bound provider traffic.

    Args:
        client: ElastiCache connection
        clock: Time source
        limits: Channel or notification type -> RateLimit
        key_prefix: Namespace for the sorted sets
    """

    def __init__(
        self,
        client: ElastiCacheClient,
        clock: Clock,
        limits: Dict[str, RateLimit],
        key_prefix: str = "rate_limit",
    ):
        super().__init__(clock, limits)
        self._client = client
        self.key_prefix = key_prefix

    def _make_key(self, user_id: str, key: str) -> str:
        return f"{self.key_prefix}:{user_id}:{key}"

    def acquire(self, user_id: Optional[str], keys: List[str]) -> OperationResult:
        applicable = self.applicable(user_id, keys)
        if not applicable:
            return OperationResult.success()

        now = self._clock.now().timestamp()
        reservation = uuid.uuid4().hex
        try:
            pipe = self._client.client.pipeline(transaction=True)
            for key in applicable:
                redis_key = self._make_key(user_id, key)
                pipe.zremrangebyscore(redis_key, 0, now - DAY.total_seconds())
                pipe.zadd(redis_key, {reservation: now})
                pipe.zcount(redis_key, f"({now - HOUR.total_seconds()}", "+inf")
                pipe.zcard(redis_key)
                pipe.expire(redis_key, int(DAY.total_seconds()))
            replies = pipe.execute()
        except RedisError as e:
            logger.error(
                "rate_limit_backend_unavailable", user_id=user_id, error=str(e)
            )
            return OperationResult.success(message="Rate limit backend unavailable")

        for index, key in enumerate(applicable):
            hourly, daily = replies[index * 5 + 2], replies[index * 5 + 3]
            limit = self._limits[key]
            if hourly <= limit.per_hour and daily <= limit.per_day:
                continue
            self.release(user_id, applicable, reservation)
            denial = self._denial(user_id, key, now, hourly > limit.per_hour)
            logger.info(
                "rate_limit_exceeded",
                user_id=user_id,
                key=key,
                retry_after=denial.retry_after,
            )
            return denial
        return OperationResult.success(data=reservation)

    def _denial(
        self, user_id: str, key: str, now: float, hourly: bool
    ) -> OperationResult:
        limit = self._limits[key]
        redis_key = self._make_key(user_id, key)
        try:
            if hourly:
                oldest = self._client.client.zrangebyscore(
                    redis_key,
                    f"({now - HOUR.total_seconds()}",
                    "+inf",
                    start=0,
                    num=1,
                    withscores=True,
                )
            else:
                oldest = self._client.client.zrange(redis_key, 0, 0, withscores=True)
        except RedisError as e:
            logger.warning("rate_limit_window_read_failed", key=key, error=str(e))
            oldest = []

        window = HOUR.total_seconds() if hourly else DAY.total_seconds()
        wait = oldest[0][1] + window - now if oldest else window
        if hourly:
            return _limited(f"Hourly limit of {limit.per_hour} reached for {key}", wait)
        return _limited(f"Daily limit of {limit.per_day} reached for {key}", wait)

    def release(
        self, user_id: Optional[str], keys: List[str], reservation: Optional[str]
    ) -> None:
        applicable = self.applicable(user_id, keys)
        if reservation is None or not applicable:
            return
        try:
            pipe = self._client.client.pipeline(transaction=True)
            for key in applicable:
                pipe.zrem(self._make_key(user_id, key), reservation)
            pipe.execute()
        except RedisError as e:
            logger.warning(
                "rate_limit_release_failed", user_id=user_id, error=str(e)
            )


def build_rate_limiter(
    settings: Settings,
    clock: Clock,
    elasticache_client: Optional[ElastiCacheClient] = None,
) -> RateLimiter:
    """Build the limiter selected by NOTIFICATIONS_RATE_LIMIT_BACKEND.

    Args:
        settings: Application settings.
        clock: Time source for the windows.
        elasticache_client: Optional pre-built Redis connection.

    Returns:
        InMemoryRateLimiter for 'memory', RedisRateLimiter for 'redis'.
    """
    config = settings.notification_rate_limits
    if config.backend == "redis":
        client = elasticache_client or ElastiCacheClient(
            settings.elasticache.ELASTICACHE_ENDPOINT,
            settings.elasticache.ELASTICACHE_PORT,
        )
        limiter: RateLimiter = RedisRateLimiter(client, clock, config.limits)
    else:
        limiter = InMemoryRateLimiter(clock, config.limits)

    logger.info("initialized_rate_limiter", backend=config.backend)
    return limiter
