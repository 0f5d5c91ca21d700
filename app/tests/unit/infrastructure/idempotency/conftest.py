"""Fixtures for idempotency cache tests."""

from unittest.mock import MagicMock

import pytest

from infrastructure.idempotency.dynamodb import DynamoDBCache
from infrastructure.idempotency.memory import InMemoryCache
from infrastructure.operations.result import OperationResult


@pytest.fixture
def memory_cache(clock):
    """In-memory cache with a one hour default TTL."""
    return InMemoryCache(clock, default_ttl_seconds=3600)


@pytest.fixture
def dynamodb_client():
    """Mocked DynamoDBClient whose calls succeed by default."""
    client = MagicMock()
    client.put_item.return_value = OperationResult.success()
    client.delete_item.return_value = OperationResult.success()
    client.get_item.return_value = OperationResult.success(data={})
    client.scan.return_value = OperationResult.success(data=[])
    return client


@pytest.fixture
def dynamodb_cache(dynamodb_client, clock):
    return DynamoDBCache(
        dynamodb_client, clock, table_name="test_idempotency", default_ttl_seconds=60
    )
