"""Unit tests for server.server module."""

import pytest

from server import server


@pytest.mark.unit
def test_handler_is_fastapi_app():
    assert server.handler is not None
    assert server.handler.title == "Notification Engine"


@pytest.mark.unit
def test_cors_middleware_configured():
    middleware_classes = [m.cls.__name__ for m in server.handler.user_middleware]
    assert "CORSMiddleware" in middleware_classes


@pytest.mark.unit
def test_api_routes_included():
    route_paths = {str(route.path) for route in server.handler.routes}
    assert {
        "/version",
        "/health",
        "/notifications/health",
        "/notifications/statistics",
    } <= route_paths


@pytest.mark.unit
def test_rate_limiter_attached():
    assert server.handler.state.limiter is not None
