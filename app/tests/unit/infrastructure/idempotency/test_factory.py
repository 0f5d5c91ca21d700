"""Unit tests for idempotency cache factory and key builder."""

from unittest.mock import MagicMock

import pytest

from infrastructure.configuration import Settings
from infrastructure.configuration.infrastructure import IdempotencySettings
from infrastructure.idempotency import (
    DynamoDBCache,
    IdempotencyKeyBuilder,
    InMemoryCache,
    build_cache,
)

pytestmark = pytest.mark.unit


class TestBuildCache:
    """Tests for build_cache."""

    def test_memory_backend_by_default(self, clock):
        cache = build_cache(Settings(PREFIX="test"), clock)
        assert isinstance(cache, InMemoryCache)

    def test_dynamodb_backend(self, clock):
        settings = Settings(
            PREFIX="test",
            idempotency=IdempotencySettings(
                IDEMPOTENCY_BACKEND="dynamodb",
                IDEMPOTENCY_TABLE_NAME="keys",
                IDEMPOTENCY_TTL_SECONDS=900,
            ),
        )

        cache = build_cache(settings, clock, MagicMock())

        assert isinstance(cache, DynamoDBCache)
        assert cache.table_name == "keys"
        assert cache.ttl_seconds == 900

    def test_unknown_backend(self, clock):
        settings = Settings(
            PREFIX="test", idempotency=IdempotencySettings(IDEMPOTENCY_BACKEND="redis")
        )
        with pytest.raises(ValueError):
            build_cache(settings, clock)


class TestIdempotencyKeyBuilder:
    """Tests for IdempotencyKeyBuilder."""

    def test_key_format(self):
        key = IdempotencyKeyBuilder("notifications").build("schedule", ref="booking:1")
        namespace, operation, digest = key.split(":")
        assert (namespace, operation) == ("notifications", "schedule")
        assert len(digest) == 16

    def test_component_order_does_not_matter(self):
        keys = IdempotencyKeyBuilder("notifications")
        assert keys.build("schedule", a=1, b=2) == keys.build("schedule", b=2, a=1)

    def test_components_change_the_key(self):
        keys = IdempotencyKeyBuilder("notifications")
        assert keys.build("schedule", channel="email") != keys.build(
            "schedule", channel="sms"
        )

    def test_namespace_changes_the_key(self):
        assert IdempotencyKeyBuilder("a").build("run", x=1) != IdempotencyKeyBuilder(
            "b"
        ).build("run", x=1)
