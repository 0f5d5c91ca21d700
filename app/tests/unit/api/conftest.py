"""Fixtures for API route tests."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies.notifications import get_notification_engine
from api.dependencies.rate_limits import get_limiter, setup_rate_limiter
from api.router import api_router
from infrastructure.services import get_settings


@pytest.fixture(autouse=True)
def reset_limiter():
    limiter = get_limiter()
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def app(engine, settings):
    """Bare application with the API router and the test engine wired in."""
    app = FastAPI()
    setup_rate_limiter(app)
    app.include_router(api_router)
    app.dependency_overrides[get_notification_engine] = lambda: engine
    app.dependency_overrides[get_settings] = lambda: settings
    return app


@pytest.fixture
def client(app):
    return TestClient(app)
