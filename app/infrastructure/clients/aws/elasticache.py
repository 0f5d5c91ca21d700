"""ElastiCache (Redis/Valkey) client for state shared between instances.

This is a Redis database connection, not an AWS API client: boto3 is not
involved. The connection pool is created on first use so building the
engine never needs a reachable cluster.
"""

import threading
from typing import Optional

import structlog
from redis import ConnectionPool, Redis  # type: ignore

logger = structlog.get_logger()


class ElastiCacheClient:
    """Lazily connected Redis client with connection pooling.

    Args:
        endpoint: Cluster primary endpoint host
        port: Cluster port
        redis_client: Pre-built client (tests, custom pools)
    """

    def __init__(
        self,
        endpoint: str,
        port: int = 6379,
        redis_client: Optional[Redis] = None,
    ) -> None:
        self.endpoint = endpoint
        self.port = port
        self._client = redis_client
        self._lock = threading.Lock()

    @property
    def client(self) -> Redis:
        with self._lock:
            if self._client is None:
                pool = ConnectionPool(
                    host=self.endpoint,
                    port=self.port,
                    db=0,
                    decode_responses=True,
                    max_connections=10,
                    socket_timeout=5,
                    socket_connect_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )
                self._client = Redis(connection_pool=pool)
                logger.info(
                    "elasticache_connection_pool_created",
                    host=self.endpoint,
                    port=self.port,
                )
            return self._client
