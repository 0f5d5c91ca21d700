"""Idempotency cache factory."""

from typing import Optional

from infrastructure.clients.aws import DynamoDBClient, SessionProvider
from infrastructure.clock import Clock
from infrastructure.configuration import Settings
from infrastructure.idempotency.cache import IdempotencyCache
from infrastructure.idempotency.dynamodb import DynamoDBCache
from infrastructure.idempotency.memory import InMemoryCache
from infrastructure.logging import get_module_logger

logger = get_module_logger()


def build_cache(
    settings: Settings,
    clock: Clock,
    dynamodb_client: Optional[DynamoDBClient] = None,
) -> IdempotencyCache:
    """Build the idempotency cache selected by IDEMPOTENCY_BACKEND.

    Args:
        settings: Application settings.
        clock: Clock used for entry expiry.
        dynamodb_client: Optional pre-built client (shared with the store).

    Returns:
        InMemoryCache for 'memory', DynamoDBCache for 'dynamodb'.
    """
    config = settings.idempotency
    backend = config.IDEMPOTENCY_BACKEND

    if backend == "dynamodb":
        client = dynamodb_client or DynamoDBClient(
            SessionProvider(
                region=settings.aws.AWS_REGION,
                endpoint_url=settings.aws.ENDPOINT_URL,
            )
        )
        cache: IdempotencyCache = DynamoDBCache(
            client,
            clock,
            table_name=config.IDEMPOTENCY_TABLE_NAME,
            default_ttl_seconds=config.IDEMPOTENCY_TTL_SECONDS,
        )
    elif backend == "memory":
        cache = InMemoryCache(clock, default_ttl_seconds=config.IDEMPOTENCY_TTL_SECONDS)
    else:
        raise ValueError(f"Unsupported idempotency backend: {backend}")

    logger.info("initialized_idempotency_cache", backend=backend)
    return cache
