"""Unit tests for the ElastiCache (Redis) connection wrapper."""

from unittest.mock import MagicMock, patch

import pytest

from infrastructure.clients.aws import ElastiCacheClient


@pytest.mark.unit
class TestElastiCacheClient:
    def test_no_connection_until_first_use(self):
        with patch("infrastructure.clients.aws.elasticache.ConnectionPool") as pool:
            ElastiCacheClient("cache.example.internal", 6380)

        pool.assert_not_called()

    def test_creates_pool_on_first_access(self):
        with patch(
            "infrastructure.clients.aws.elasticache.ConnectionPool"
        ) as pool, patch("infrastructure.clients.aws.elasticache.Redis") as redis:
            client = ElastiCacheClient("cache.example.internal", 6380)

            assert client.client is redis.return_value
            assert client.client is redis.return_value

        pool.assert_called_once()
        kwargs = pool.call_args.kwargs
        assert kwargs["host"] == "cache.example.internal"
        assert kwargs["port"] == 6380
        assert kwargs["decode_responses"] is True
        redis.assert_called_once_with(connection_pool=pool.return_value)

    def test_injected_client_is_used_as_is(self):
        injected = MagicMock()
        with patch("infrastructure.clients.aws.elasticache.ConnectionPool") as pool:
            client = ElastiCacheClient("localhost", redis_client=injected)

            assert client.client is injected

        pool.assert_not_called()
