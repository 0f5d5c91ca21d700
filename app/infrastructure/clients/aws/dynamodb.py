"""DynamoDB client shared by the record store and the idempotency cache.

Every call goes through execute_aws_api_call(), so callers always get an
OperationResult back: throttling is retried there, and conditional-write
failures surface as ``error_code="CONDITION_FAILED"``.
"""

import threading
from typing import Any, Dict, List, Optional

import structlog

from infrastructure.clients.aws.executor import execute_aws_api_call
from infrastructure.clients.aws.session_provider import SessionProvider
from infrastructure.operations.result import OperationResult

logger = structlog.get_logger()

SERVICE = "dynamodb"


class DynamoDBClient:
    """Table-oriented wrapper around one lazily created boto3 client.

    Parameter names after ``table_name`` follow the boto3 request shape
    (``Key``, ``Item``, ``KeyConditionExpression``) so expressions can be
    passed straight through.

    Args:
        session_provider: Supplies region and endpoint for the boto3 client
    """

    def __init__(self, session_provider: SessionProvider) -> None:
        self._session_provider = session_provider
        self._client: Any = None
        self._lock = threading.Lock()

    @property
    def client(self) -> Any:
        # boto3 clients are thread-safe once built; only creation is guarded
        with self._lock:
            if self._client is None:
                self._client = self._session_provider.get_boto3_client(SERVICE)
                logger.debug("dynamodb_client_created")
            return self._client

    def _call(self, method: str, table_name: str, **kwargs) -> OperationResult:
        return execute_aws_api_call(self.client, method, TableName=table_name, **kwargs)

    def _paginated(self, method: str, table_name: str, **kwargs) -> OperationResult:
        return execute_aws_api_call(
            self.client,
            method,
            keys=["Items"],
            force_paginate=True,
            TableName=table_name,
            **kwargs,
        )

    def get_item(self, table_name: str, Key: Dict[str, Any], **kwargs) -> OperationResult:
        """Raw get_item response as data; "Item" is missing for unknown keys."""
        return self._call("get_item", table_name, Key=Key, **kwargs)

    def put_item(
        self,
        table_name: str,
        Item: Dict[str, Any],
        expected_error_codes: Optional[List[str]] = None,
        **kwargs,
    ) -> OperationResult:
        return self._call(
            "put_item",
            table_name,
            Item=Item,
            expected_error_codes=expected_error_codes,
            **kwargs,
        )

    def update_item(
        self,
        table_name: str,
        Key: Dict[str, Any],
        expected_error_codes: Optional[List[str]] = None,
        **kwargs,
    ) -> OperationResult:
        return self._call(
            "update_item",
            table_name,
            Key=Key,
            expected_error_codes=expected_error_codes,
            **kwargs,
        )

    def delete_item(self, table_name: str, Key: Dict[str, Any], **kwargs) -> OperationResult:
        return self._call("delete_item", table_name, Key=Key, **kwargs)

    def query(self, table_name: str, KeyConditionExpression: Any, **kwargs) -> OperationResult:
        """All items matching the key condition, every page followed."""
        return self._paginated(
            "query", table_name, KeyConditionExpression=KeyConditionExpression, **kwargs
        )

    def scan(self, table_name: str, **kwargs) -> OperationResult:
        """All items of the table (or index), every page followed."""
        return self._paginated("scan", table_name, **kwargs)

    def healthcheck(self, table_name: str) -> OperationResult:
        """describe_table without retries, for the health check."""
        return self._call("describe_table", table_name, max_retries=0)
