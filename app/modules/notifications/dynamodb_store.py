"""DynamoDB-backed notification store for multi-instance deployments.

Table Schema:
    PK: id (String)
    Attributes: record_json (the full record), status, scheduled_at,
        type_channel, created_at, idempotency_key, business_ref,
        version, ttl
    GSIs:
        status-scheduled_at-index (status + scheduled_at)
        type_channel-created_at-index (type_channel + created_at)
        idempotency_key-index (idempotency_key)
        business_ref-index (business_ref)

Timestamps in key attributes use a fixed-width UTC format so that string
ordering matches time ordering. Every write is conditional on ``version``,
and a claim is a conditional put on ``status = pending`` and ``version``.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import structlog

from infrastructure.clients.aws.dynamodb import DynamoDBClient
from infrastructure.operations import NotificationStoreError, OperationResult
from modules.notifications.models import (
    Channel,
    Notification,
    NotificationStatus,
    NotificationType,
)
from modules.notifications.store import due_sort_key

logger = structlog.get_logger()

STATUS_INDEX = "status-scheduled_at-index"
TYPE_CHANNEL_INDEX = "type_channel-created_at-index"
IDEMPOTENCY_INDEX = "idempotency_key-index"
BUSINESS_REF_INDEX = "business_ref-index"


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class DynamoDBNotificationStore:
    """NotificationStore shared between engine instances.

    Args:
        client: DynamoDBClient used for every call
        table_name: Table holding notification records
        ttl_days: Safety-net expiry applied to every record
    """

    def __init__(self, client: DynamoDBClient, table_name: str, ttl_days: int = 120):
        self._client = client
        self.table_name = table_name
        self.ttl_days = ttl_days
        logger.info(
            "dynamodb_notification_store_initialized",
            table_name=table_name,
            ttl_days=ttl_days,
        )

    def _to_item(self, record: Notification) -> Dict[str, Any]:
        created = record.created_at or record.scheduled_at
        ttl = int((created + timedelta(days=self.ttl_days)).timestamp())
        return {
            "id": {"S": record.id},
            "record_json": {"S": record.model_dump_json()},
            "status": {"S": record.status.value},
            "scheduled_at": {"S": format_timestamp(record.scheduled_at)},
            "type_channel": {"S": f"{record.type.value}#{record.channel.value}"},
            "created_at": {"S": format_timestamp(created)},
            "idempotency_key": {"S": record.idempotency_key},
            "business_ref": {"S": str(record.business_ref)},
            "version": {"N": str(record.version)},
            "ttl": {"N": str(ttl)},
        }

    @staticmethod
    def _from_item(item: Dict[str, Any]) -> Notification:
        record = Notification.model_validate_json(item["record_json"]["S"])
        record.version = int(item["version"]["N"])
        return record

    def _raise(self, result: OperationResult, notification_id: str) -> None:
        logger.error(
            "notification_store_call_failed",
            notification_id=notification_id,
            error=result.message,
            error_code=result.error_code,
        )
        raise NotificationStoreError(result.message, error_code=result.error_code)

    def _put(
        self,
        record: Notification,
        condition: str,
        names: Dict[str, str],
        values: Optional[Dict[str, Any]] = None,
    ) -> OperationResult:
        kwargs: Dict[str, Any] = {
            "ConditionExpression": condition,
            "ExpressionAttributeNames": names,
        }
        if values:
            kwargs["ExpressionAttributeValues"] = values
        return self._client.put_item(
            table_name=self.table_name,
            Item=self._to_item(record),
            expected_error_codes=["CONDITION_FAILED"],
            **kwargs,
        )

    def add(self, notification: Notification) -> Notification:
        record = notification.model_copy(deep=True)
        record.version = 1
        result = self._put(record, "attribute_not_exists(#id)", {"#id": "id"})
        if result.error_code == "CONDITION_FAILED":
            raise NotificationStoreError(
                f"Notification {record.id} already exists",
                error_code="ALREADY_EXISTS",
            )
        if not result.is_success:
            self._raise(result, record.id)
        notification.version = record.version
        return record

    def get(self, notification_id: str) -> Optional[Notification]:
        result = self._client.get_item(
            table_name=self.table_name,
            Key={"id": {"S": notification_id}},
            ConsistentRead=True,
        )
        if not result.is_success:
            self._raise(result, notification_id)
        item = (result.data or {}).get("Item")
        return self._from_item(item) if item else None

    def save(self, notification: Notification) -> Notification:
        record = notification.model_copy(deep=True)
        expected = record.version
        record.version = expected + 1
        result = self._put(
            record,
            "#version = :expected",
            {"#version": "version"},
            {":expected": {"N": str(expected)}},
        )
        if result.error_code == "CONDITION_FAILED":
            raise NotificationStoreError(
                f"Notification {record.id} was modified concurrently",
                error_code="CONFLICT",
            )
        if not result.is_success:
            self._raise(result, record.id)
        notification.version = record.version
        return record

    def claim(self, notification_id: str, now: datetime) -> Optional[Notification]:
        current = self.get(notification_id)
        if current is None or current.status != NotificationStatus.PENDING:
            return None

        expected = current.version
        current.transition_to(NotificationStatus.SENDING, now)
        current.version = expected + 1
        result = self._put(
            current,
            "#status = :pending AND #version = :expected",
            {"#status": "status", "#version": "version"},
            {
                ":pending": {"S": NotificationStatus.PENDING.value},
                ":expected": {"N": str(expected)},
            },
        )
        if result.error_code == "CONDITION_FAILED":
            logger.debug("notification_claim_rejected", notification_id=notification_id)
            return None
        if not result.is_success:
            self._raise(result, notification_id)
        return current

    def delete(self, notification_id: str) -> bool:
        result = self._client.delete_item(
            table_name=self.table_name,
            Key={"id": {"S": notification_id}},
            ReturnValues="ALL_OLD",
        )
        if not result.is_success:
            self._raise(result, notification_id)
        return bool((result.data or {}).get("Attributes"))

    def _query(self, index: str, condition: str, names, values) -> List[Notification]:
        kwargs: Dict[str, Any] = {"ExpressionAttributeValues": values}
        if names:
            kwargs["ExpressionAttributeNames"] = names
        result = self._client.query(
            table_name=self.table_name,
            KeyConditionExpression=condition,
            IndexName=index,
            **kwargs,
        )
        if not result.is_success:
            self._raise(result, index)
        return [self._from_item(item) for item in (result.data or [])]

    def find_due(
        self,
        now: datetime,
        limit: int,
        type_filter: Optional[NotificationType] = None,
    ) -> List[Notification]:
        records = self._query(
            STATUS_INDEX,
            "#status = :status AND scheduled_at <= :now",
            {"#status": "status"},
            {
                ":status": {"S": NotificationStatus.PENDING.value},
                ":now": {"S": format_timestamp(now)},
            },
        )
        due = [
            n
            for n in records
            if n.attempts < n.max_attempts
            and (type_filter is None or n.type == type_filter)
        ]
        due.sort(key=due_sort_key)
        return due[:limit]

    def find_by_status(
        self, status: NotificationStatus, limit: Optional[int] = None
    ) -> List[Notification]:
        records = self._query(
            STATUS_INDEX,
            "#status = :status",
            {"#status": "status"},
            {":status": {"S": status.value}},
        )
        records.sort(key=lambda n: (n.updated_at or n.scheduled_at, n.id))
        return records if limit is None else records[:limit]

    def find_by_idempotency_key(self, key: str) -> List[Notification]:
        return self._query(
            IDEMPOTENCY_INDEX,
            "idempotency_key = :key",
            None,
            {":key": {"S": key}},
        )

    def find_by_business_ref(self, business_ref: str) -> List[Notification]:
        return self._query(
            BUSINESS_REF_INDEX,
            "business_ref = :ref",
            None,
            {":ref": {"S": business_ref}},
        )

    def find_by_type_channel(
        self, notification_type: NotificationType, channel: Channel
    ) -> List[Notification]:
        return self._query(
            TYPE_CHANNEL_INDEX,
            "type_channel = :tc",
            None,
            {":tc": {"S": f"{notification_type.value}#{channel.value}"}},
        )

    def list_all(self) -> List[Notification]:
        result = self._client.scan(table_name=self.table_name)
        if not result.is_success:
            self._raise(result, "scan")
        return [self._from_item(item) for item in (result.data or [])]
