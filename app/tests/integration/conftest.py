"""
Root-level conftest.py for integration tests.

Integration tests drive a fully wired engine (see tests/conftest.py) and
the FastAPI lifespan; only the transport providers and the escalator are
fakes.
"""

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies.rate_limits import get_limiter, setup_rate_limiter
from api.router import api_router
from server.lifespan import lifespan


@pytest.fixture
def app_with_lifespan(engine, settings):
    """Application running its real lifespan against the test engine.

    Yields:
        FastAPI: app whose lifespan has completed startup
    """
    app = FastAPI(lifespan=lifespan)
    setup_rate_limiter(app)
    app.include_router(api_router)
    get_limiter().reset()

    with patch("server.lifespan.get_settings", return_value=settings), patch(
        "server.lifespan.get_engine", return_value=engine
    ), patch(
        "api.dependencies.notifications.get_engine", return_value=engine
    ), patch(
        "server.lifespan.reset_engine"
    ):
        with TestClient(app) as client:
            app.state.client = client
            yield app
