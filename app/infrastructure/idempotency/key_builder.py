"""Idempotency key builder for consistent key generation."""

import hashlib
from typing import Any


class IdempotencyKeyBuilder:
    """Build deterministic idempotency keys.

    Keys have the form ``<namespace>:<operation>:<digest>`` where the digest
    is the first 16 hex characters of a sha256 over the sorted components.

    Example:
        >>> builder = IdempotencyKeyBuilder(namespace="notifications")
        >>> builder.build(
        ...     operation="schedule",
        ...     business_ref="booking:42",
        ...     type="booking_reminder",
        ...     channel="email",
        ...     bucket=480000,
        ... )
        'notifications:schedule:3f1c...'
    """

    def __init__(self, namespace: str):
        self.namespace = namespace

    def build(self, operation: str, **components: Any) -> str:
        """Build an idempotency key from components.

        Args:
            operation: Operation type (e.g., "schedule", "run")
            **components: Key components; order does not matter

        Returns:
            Idempotency key string
        """
        key_parts = [self.namespace, operation]
        key_parts.extend(f"{k}={v}" for k, v in sorted(components.items()))
        key_string = "|".join(str(part) for part in key_parts)

        return f"{self.namespace}:{operation}:{self.digest(key_string)}"

    @staticmethod
    def digest(value: str) -> str:
        """Short sha256 digest used in every key."""
        return hashlib.sha256(value.encode()).hexdigest()[:16]
