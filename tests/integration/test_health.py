from fastapi.testclient import TestClient

from usage_metrics.main import create_app


def test_health(collector_app):
    response = TestClient(collector_app).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_is_degraded_before_first_refresh(collector_app):
    payload = TestClient(collector_app).get("/ready").json()

    assert payload["status"] == "degraded"
    assert payload["components"]["allow_list_cache"]["ok"] is False


def test_lifespan_loads_cache_and_starts_refresher(collector_settings, config_server):
    settings = collector_settings.model_copy(update={"refresh_enabled": True})
    app = create_app(settings=settings, http_client=config_server.client())

    with TestClient(app) as client:
        payload = client.get("/ready").json()
        assert payload["status"] == "ok"
        assert payload["components"]["allow_list_cache"]["apps"] == 1
        assert payload["components"]["allow_list_cache"]["refresher_running"] is True

        response = client.post("/sendMetrics", json={"appId": "app1", "metrics": {"a": 1}})
        assert response.status_code == 202

    assert app.state.refresher.running is False


def test_lifespan_survives_unreachable_config(collector_settings, config_server):
    config_server.fail("manifest.json", status=503)
    settings = collector_settings.model_copy(update={"refresh_enabled": True})
    app = create_app(settings=settings, http_client=config_server.client())

    with TestClient(app) as client:
        assert client.get("/ready").json()["status"] == "degraded"
        response = client.post("/sendMetrics", json={"appId": "app1", "metrics": {"a": 1}})
        assert response.status_code == 404
