from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from src.guruchat.api.main import app
from src.guruchat.services import sessions as sessions_service
from .utils import client_account, helper_account


client = TestClient(app)


class _Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock(monkeypatch):
    fake = _Clock(datetime(2026, 3, 2, 9, 0, tzinfo=UTC))
    monkeypatch.setattr(sessions_service, "utc_now", fake)
    return fake


def _request(headers, helper_id):
    r = client.post("/sessions", json={"helper_id": helper_id}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_session_lifecycle_over_http(clock):
    helper_h, helper_id = helper_account(client, "guru@example.com", name="Guru", rate=600)
    client_h, _ = client_account(client, "cleo@example.com", name="Cleo")

    helpers = client.get("/helpers", params={"search": "career"}).json()
    assert [h["user_id"] for h in helpers] == [helper_id]

    session = _request(client_h, helper_id)
    assert session["status"] == "pending" and session["hourly_rate"] == 600

    pending = client.get("/sessions/pending", headers=helper_h).json()
    assert [p["session"]["id"] for p in pending] == [session["id"]]
    assert pending[0]["counterpart_name"] == "Cleo"

    r = client.post(f"/sessions/{session['id']}/accept", headers=helper_h)
    assert r.status_code == 200 and r.json()["status"] == "active"
    assert r.json()["started_at"].startswith("2026-03-02T09:00:00")

    r = client.post(f"/sessions/{session['id']}/messages", json={"content": "Hi Guru"}, headers=client_h)
    assert r.status_code == 201

    clock.now += timedelta(minutes=10, seconds=40)
    r = client.post(f"/sessions/{session['id']}/end", headers=client_h)
    assert r.status_code == 200, r.text
    done = r.json()
    assert done["status"] == "completed"
    assert done["duration_minutes"] == 10
    assert done["total_amount"] == 100

    detail = client.get(f"/sessions/{session['id']}", headers=helper_h).json()
    assert [m["content"] for m in detail["messages"]] == ["Hi Guru"]

    r = client.post(f"/sessions/{session['id']}/messages", json={"content": "late"}, headers=client_h)
    assert r.status_code == 409
    r = client.post(f"/sessions/{session['id']}/accept", headers=helper_h)
    assert r.status_code == 409

    history = client.get("/sessions", params={"status": "completed"}, headers=client_h).json()
    assert [h["session"]["id"] for h in history] == [session["id"]]


def test_reject_and_permissions():
    helper_h, helper_id = helper_account(client, "gita@example.com", name="Gita")
    client_h, _ = client_account(client, "carl@example.com")
    outsider_h, _ = client_account(client, "otto@example.com")
    session = _request(client_h, helper_id)

    # Clients have no respond permission at all.
    assert client.post(f"/sessions/{session['id']}/accept", headers=client_h).status_code == 403
    assert client.get(f"/sessions/{session['id']}", headers=outsider_h).status_code == 403
    assert client.get("/sessions/missing", headers=client_h).status_code == 404

    r = client.post(f"/sessions/{session['id']}/reject", headers=helper_h)
    assert r.status_code == 200 and r.json()["status"] == "cancelled"
    assert client.post(f"/sessions/{session['id']}/end", headers=client_h).status_code == 409


def test_request_validation_errors():
    helper_h, helper_id = helper_account(client, "hana@example.com")
    client_h, client_id = client_account(client, "ivy@example.com")
    assert client.post("/sessions", json={"helper_id": client_id}, headers=helper_h).status_code == 404
    assert client.post("/sessions", json={"helper_id": helper_id}, headers=helper_h).status_code == 422
    client.patch("/profiles/me", json={"is_available": False}, headers=helper_h)
    assert client.post("/sessions", json={"helper_id": helper_id}, headers=client_h).status_code == 422
    assert client.post("/sessions", json={"helper_id": helper_id}).status_code == 401


def test_routes_are_also_served_under_api_prefix():
    _, helper_id = helper_account(client, "jo@example.com")
    client_h, _ = client_account(client, "kim@example.com")
    r = client.post("/api/sessions", json={"helper_id": helper_id}, headers=client_h)
    assert r.status_code == 201
    assert client.get("/api/health").json()["status"] == "ok"


def test_end_bills_server_time_not_client_supplied_end(clock):
    helper_h, helper_id = helper_account(client, "lena@example.com", rate=600)
    client_h, _ = client_account(client, "mo@example.com")
    session = _request(client_h, helper_id)
    client.post(f"/sessions/{session['id']}/accept", headers=helper_h)

    clock.now += timedelta(minutes=5)
    forged = (clock.now + timedelta(days=30)).isoformat()
    r = client.post(f"/sessions/{session['id']}/end", json={"ended_at": forged}, headers=helper_h)
    assert r.status_code == 200, r.text
    done = r.json()
    assert done["duration_minutes"] == 5
    assert done["total_amount"] == 50
    assert done["ended_at"].startswith("2026-03-02T09:05:00")
