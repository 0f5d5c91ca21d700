import pytest

from infrastructure.services import get_settings

pytestmark = pytest.mark.unit


def test_get_version_unknown(client):
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": "Unknown"}


def test_get_version_known(app, client, settings):
    app.dependency_overrides[get_settings] = lambda: settings.model_copy(
        update={"GIT_SHA": "foo"}
    )

    response = client.get("/version")

    assert response.json() == {"version": "foo"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
