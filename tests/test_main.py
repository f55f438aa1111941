from fastapi.testclient import TestClient

from src.guruchat.api.main import app
from src.guruchat.observability.metrics import sanitize_path


client = TestClient(app)


def test_health_endpoint():
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["components"]["tables"] == "InMemoryTableStore"
    assert data["timestamp"].endswith("Z")


def test_root_endpoints():
    assert client.get("/").json()["name"] == "GuruChat API"
    assert client.get("/api").json()["version"] == "0.1.0"


def test_metrics_endpoint_exposes_histogram_and_generation_counter():
    r = client.get("/health")
    assert r.status_code == 200

    m = client.get("/metrics")
    assert m.status_code == 200
    body = m.text
    assert "# HELP guruchat_request_latency_seconds" in body
    assert "# TYPE guruchat_request_latency_seconds histogram" in body
    assert 'path="/health"' in body
    assert "guruchat_ai_generations_total" in body


def test_sanitize_path_groups_ids_and_api_prefix():
    assert sanitize_path("/sessions/abc123/messages") == "/sessions"
    assert sanitize_path("/api/sessions/abc123") == "/sessions"
    assert sanitize_path("/api") == "/api"
    assert sanitize_path("") == "/"


def test_unhandled_errors_become_reload_hint(monkeypatch):
    from src.guruchat.services import profiles

    def _boom(self, search=None):
        raise RuntimeError("database on fire")

    monkeypatch.setattr(profiles.ProfileService, "list_helpers", _boom)
    safe_client = TestClient(app, raise_server_exceptions=False)
    r = safe_client.get("/helpers")
    assert r.status_code == 500
    assert r.json() == {"detail": "Something went wrong", "action": "reload"}
