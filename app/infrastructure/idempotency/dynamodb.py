"""DynamoDB idempotency cache implementation."""

import json
from typing import Any, Dict, Optional

import structlog

from infrastructure.clients.aws.dynamodb import DynamoDBClient
from infrastructure.clock import Clock
from infrastructure.idempotency.cache import IdempotencyCache

logger = structlog.get_logger()

PARTITION_KEY = "idempotency_key"


class DynamoDBCache(IdempotencyCache):
    """DynamoDB-backed idempotency cache.

    Uses a dedicated table with:
    - PK: idempotency_key (string)
    - Attributes: value_json, ttl (epoch seconds, for DynamoDB TTL), created_at

    DynamoDB removes expired items lazily, so reads and conditional writes
    also compare ``ttl`` with the current time. Suitable for deployments
    where several engine instances schedule and dispatch concurrently.
    """

    def __init__(
        self,
        client: DynamoDBClient,
        clock: Clock,
        table_name: str,
        default_ttl_seconds: int = 3600,
    ):
        self._client = client
        self._clock = clock
        self.table_name = table_name
        self.ttl_seconds = default_ttl_seconds
        logger.info(
            "initialized_dynamodb_idempotency_cache",
            table_name=table_name,
            ttl_seconds=default_ttl_seconds,
        )

    def _now(self) -> int:
        return int(self._clock.now().timestamp())

    def _item(
        self, key: str, value: Dict[str, Any], ttl_seconds: Optional[int]
    ) -> Dict[str, Any]:
        now = self._now()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        return {
            PARTITION_KEY: {"S": key},
            "value_json": {"S": json.dumps(value, default=str)},
            "ttl": {"N": str(now + ttl)},
            "created_at": {"N": str(now)},
        }

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        result = self._client.get_item(
            table_name=self.table_name,
            Key={PARTITION_KEY: {"S": key}},
            ConsistentRead=True,
        )

        if not result.is_success:
            logger.warning(
                "idempotency_cache_get_failed",
                key=key,
                error=result.message,
            )
            return None

        item = (result.data or {}).get("Item")
        if not item:
            logger.debug("idempotency_cache_miss", key=key)
            return None

        if int(item.get("ttl", {}).get("N", "0")) <= self._now():
            logger.debug("idempotency_cache_expired", key=key)
            return None

        try:
            return json.loads(item["value_json"]["S"])
        except (KeyError, TypeError, ValueError) as e:
            logger.error("idempotency_cache_decode_error", key=key, error=str(e))
            return None

    def set(
        self, key: str, value: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> None:
        result = self._client.put_item(
            table_name=self.table_name,
            Item=self._item(key, value, ttl_seconds),
        )
        if result.is_success:
            logger.debug("idempotency_cache_set_success", key=key)
        else:
            logger.error("idempotency_cache_set_failed", key=key, error=result.message)

    def add(
        self, key: str, value: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> bool:
        result = self._client.put_item(
            table_name=self.table_name,
            Item=self._item(key, value, ttl_seconds),
            ConditionExpression="attribute_not_exists(#pk) OR #ttl <= :now",
            ExpressionAttributeNames={"#pk": PARTITION_KEY, "#ttl": "ttl"},
            ExpressionAttributeValues={":now": {"N": str(self._now())}},
            expected_error_codes=["CONDITION_FAILED"],
        )
        if result.is_success:
            return True
        if result.error_code == "CONDITION_FAILED":
            logger.debug("idempotency_cache_add_rejected", key=key)
            return False

        # Without a reservation the caller would risk duplicate sends,
        # so a backend failure counts as "already reserved"
        logger.error("idempotency_cache_add_failed", key=key, error=result.message)
        return False

    def delete(self, key: str) -> None:
        result = self._client.delete_item(
            table_name=self.table_name,
            Key={PARTITION_KEY: {"S": key}},
        )
        if not result.is_success:
            logger.warning(
                "idempotency_cache_delete_failed", key=key, error=result.message
            )

    def clear(self) -> None:
        """Clear all cached entries.

        Scans the entire table and deletes every item. Should only be used
        in testing; production relies on DynamoDB TTL.
        """
        logger.warning("idempotency_cache_clear_called", backend="dynamodb")
        result = self._client.scan(
            table_name=self.table_name, ProjectionExpression=PARTITION_KEY
        )
        if not result.is_success:
            logger.error("idempotency_cache_clear_scan_failed", error=result.message)
            return

        items = result.data or []
        for item in items:
            key_value = item.get(PARTITION_KEY, {}).get("S")
            if key_value:
                self.delete(key_value)

        logger.info("idempotency_cache_cleared", items_deleted=len(items))

    def get_stats(self) -> Dict[str, Any]:
        return {
            "backend": "dynamodb",
            "table_name": self.table_name,
            "ttl_seconds": self.ttl_seconds,
            "partition_key": PARTITION_KEY,
        }
