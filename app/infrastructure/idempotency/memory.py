"""In-memory idempotency cache for single-process deployments and tests."""

import copy
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import structlog

from infrastructure.clock import Clock
from infrastructure.idempotency.cache import IdempotencyCache

logger = structlog.get_logger()


class InMemoryCache(IdempotencyCache):
    """Thread-safe TTL cache keyed by idempotency key.

    Expiry is evaluated against the injected clock, so tests can move time
    forward to expire reservations.
    """

    def __init__(self, clock: Clock, default_ttl_seconds: int = 3600):
        self._clock = clock
        self.default_ttl_seconds = default_ttl_seconds
        self._entries: Dict[str, Tuple[Dict[str, Any], datetime]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _live(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock.now():
            del self._entries[key]
            return None
        return value

    def _expiry(self, ttl_seconds: Optional[int]) -> datetime:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        return self._clock.now() + timedelta(seconds=ttl)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            value = self._live(key)
            if value is None:
                self._misses += 1
                logger.debug("idempotency_cache_miss", key=key)
                return None
            self._hits += 1
            return copy.deepcopy(value)

    def set(
        self, key: str, value: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> None:
        with self._lock:
            self._entries[key] = (copy.deepcopy(value), self._expiry(ttl_seconds))
        logger.debug("idempotency_cache_set_success", key=key, ttl_seconds=ttl_seconds)

    def add(
        self, key: str, value: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> bool:
        with self._lock:
            if self._live(key) is not None:
                logger.debug("idempotency_cache_add_rejected", key=key)
                return False
            self._entries[key] = (copy.deepcopy(value), self._expiry(ttl_seconds))
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            now = self._clock.now()
            live = sum(1 for _, expires_at in self._entries.values() if expires_at > now)
            return {
                "backend": "memory",
                "entries": live,
                "hits": self._hits,
                "misses": self._misses,
                "default_ttl_seconds": self.default_ttl_seconds,
            }
