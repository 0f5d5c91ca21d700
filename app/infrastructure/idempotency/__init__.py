"""Infrastructure idempotency cache.

Suppresses duplicate work when schedulers or workers race on the same
logical unit: scheduling a notification, dispatching it, running a batch.
The in-memory backend serves single-process deployments and tests; the
DynamoDB backend is shared between engine instances.

Usage:

    from infrastructure.idempotency import IdempotencyKeyBuilder

    keys = IdempotencyKeyBuilder(namespace="notification_batches")
    key = keys.build("run", ids="a,b,c")

    if not cache.add(key, {"started_at": now.isoformat()}, ttl_seconds=300):
        return  # another run owns this batch
"""

from infrastructure.idempotency.cache import IdempotencyCache
from infrastructure.idempotency.dynamodb import DynamoDBCache
from infrastructure.idempotency.factory import build_cache
from infrastructure.idempotency.key_builder import IdempotencyKeyBuilder
from infrastructure.idempotency.memory import InMemoryCache

__all__ = [
    "IdempotencyCache",
    "InMemoryCache",
    "DynamoDBCache",
    "IdempotencyKeyBuilder",
    "build_cache",
]
