"""ElastiCache (Redis/Valkey) integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class ElastiCacheSettings(IntegrationSettings):
    """Redis endpoint holding state shared by every engine instance.

    Only read when a component is configured with the ``redis`` backend
    (NOTIFICATIONS_RATE_LIMIT_BACKEND).

    Environment Variables:
        ELASTICACHE_ENDPOINT: Primary endpoint host (default: localhost)
        ELASTICACHE_PORT: Port (default: 6379)
    """

    ELASTICACHE_ENDPOINT: str = Field(default="localhost", alias="ELASTICACHE_ENDPOINT")
    ELASTICACHE_PORT: int = Field(default=6379, alias="ELASTICACHE_PORT")
