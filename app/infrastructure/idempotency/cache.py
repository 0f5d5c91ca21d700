"""Idempotency cache abstract base class."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class IdempotencyCache(ABC):
    """Abstract base class for idempotency cache implementations.

    Used to suppress duplicate work when two schedulers or workers race on
    the same logical notification, batch or statistics refresh. Entries
    expire after their TTL. Implementations shared between processes must
    make ``add`` atomic.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Get the cached value for an idempotency key.

        Args:
            key: Idempotency key.

        Returns:
            Cached dict or None if not found/expired.
        """
        pass

    @abstractmethod
    def set(
        self, key: str, value: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> None:
        """Store a value for the given key, replacing any existing entry.

        Args:
            key: Idempotency key.
            value: Dict to cache.
            ttl_seconds: Time-to-live in seconds (backend default if None).
        """
        pass

    @abstractmethod
    def add(
        self, key: str, value: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> bool:
        """Store a value only if the key is absent or expired.

        Args:
            key: Idempotency key.
            value: Dict to cache.
            ttl_seconds: Time-to-live in seconds (backend default if None).

        Returns:
            True if this call created the entry, False if a live entry
            already existed.
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove an entry. Missing keys are ignored."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all cached entries (for testing).

        Note: Implementation-specific, may be expensive in distributed cache.
        """
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with cache statistics (implementation-specific).
        """
        pass
