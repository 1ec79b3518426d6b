from fastapi.testclient import TestClient

from rewrite_proxy.server import app


def test_metrics_endpoint_is_not_proxied():
    with TestClient(app) as client:
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "fastapi_app_info" in response.text


def test_app_carries_settings():
    assert app.state.settings.allow_list.is_allowed("store.steampowered.com")
    assert app.state.transport is None
