"""Infrastructure AWS clients public API.

DynamoDB backs the shared notification record store and the idempotency
cache. ElastiCache (Redis) holds the per-user send counters when rate
limits are shared between instances.

    from infrastructure.clients.aws import DynamoDBClient, SessionProvider

    client = DynamoDBClient(SessionProvider(region="ca-central-1"))
    result = client.get_item("notifications", {"id": {"S": "n-1"}})
    if result.is_success:
        item = result.data.get("Item")
"""

from infrastructure.clients.aws.dynamodb import DynamoDBClient
from infrastructure.clients.aws.elasticache import ElastiCacheClient
from infrastructure.clients.aws.session_provider import SessionProvider

__all__ = [
    "DynamoDBClient",
    "ElastiCacheClient",
    "SessionProvider",
]
