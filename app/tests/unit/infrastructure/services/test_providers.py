"""
Unit tests for dependency injection providers.

Tests cover:
- get_settings() and get_clock() caching behavior
- SettingsDep / ClockDep with FastAPI dependency injection
- Dependency override pattern for testing
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from infrastructure.clock import FrozenClock, SystemClock
from infrastructure.configuration import Settings
from infrastructure.services import ClockDep, SettingsDep, get_clock, get_settings
from tests.factories import NOW

pytestmark = pytest.mark.unit


class TestProviders:
    """Tests for the cached provider functions."""

    def test_get_settings_returns_cached_instance(self):
        assert isinstance(get_settings(), Settings)
        assert get_settings() is get_settings()

    def test_get_settings_cache_can_be_cleared(self):
        first = get_settings()
        get_settings.cache_clear()
        assert get_settings() is not first

    def test_get_clock_is_the_system_clock(self):
        assert isinstance(get_clock(), SystemClock)
        assert get_clock() is get_clock()


class TestDependencies:
    """Tests for the annotated FastAPI dependencies."""

    @pytest.fixture
    def app(self):
        app = FastAPI()

        @app.get("/now")
        def now(clock: ClockDep, settings: SettingsDep):
            return {"now": clock.now().isoformat(), "prefix": settings.PREFIX}

        yield app
        app.dependency_overrides.clear()

    def test_overrides(self, app):
        app.dependency_overrides[get_clock] = lambda: FrozenClock(NOW)
        app.dependency_overrides[get_settings] = lambda: Settings(PREFIX="test")

        response = TestClient(app).get("/now")

        assert response.status_code == 200
        assert response.json() == {"now": NOW.isoformat(), "prefix": "test"}
