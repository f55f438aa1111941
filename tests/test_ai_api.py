from fastapi.testclient import TestClient

from src.guruchat.api.main import app
from .utils import ai_request, client_account, helper_account


client = TestClient(app)


def test_generate_falls_back_to_template_when_models_fail():
    headers, _ = helper_account(client, "pro@example.com", name="Asha")
    r = client.post("/ai/generate", json=ai_request(response_type="greeting"), headers=headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is False
    assert body["outcome"] == "template"
    assert body["model"] == "fallback"
    assert body["fallback"].startswith("Hello! I'm Asha")


def test_web_client_alias_route():
    headers, _ = helper_account(client, "alias@example.com")
    r = client.post("/api/ai/gemini-response", json=ai_request(), headers=headers)
    assert r.status_code == 200
    assert r.json()["fallback"]


def test_clients_cannot_use_ai_and_bad_bodies_are_rejected():
    client_h, _ = client_account(client, "plain@example.com")
    assert client.post("/ai/generate", json=ai_request(), headers=client_h).status_code == 403
    helper_h, _ = helper_account(client, "strict@example.com")
    bad = ai_request()
    bad["responseType"] = "sales_pitch"
    assert client.post("/ai/generate", json=bad, headers=helper_h).status_code == 422


def test_compose_cap_send_and_reset():
    helper_h, helper_id = helper_account(client, "comp@example.com")
    client_h, _ = client_account(client, "asker@example.com")
    session = client.post("/sessions", json={"helper_id": helper_id}, headers=client_h).json()
    client.post(f"/sessions/{session['id']}/accept", headers=helper_h)

    r = client.post("/ai/compose", json={"request": ai_request(), "session_id": session["id"]}, headers=helper_h)
    assert r.status_code == 201, r.text
    compose_id = r.json()["compose"]["compose_id"]
    assert r.json()["compose"]["generation_count"] == 1

    for expected in (2, 3):
        r = client.post(f"/ai/compose/{compose_id}/regenerate", headers=helper_h)
        assert r.json()["accepted"] is True
        assert r.json()["compose"]["generation_count"] == expected

    r = client.post(f"/ai/compose/{compose_id}/regenerate", json={"response_type": "closing"}, headers=helper_h)
    assert r.status_code == 200
    assert r.json()["accepted"] is False and r.json()["notice"]
    assert r.json()["compose"]["generation_count"] == 3

    r = client.post(f"/ai/compose/{compose_id}/send", json={"content": "Happy to help. When works?"}, headers=helper_h)
    assert r.status_code == 200, r.text
    sent = r.json()
    assert sent["message_id"]
    assert sent["compose"]["generation_count"] == 0

    messages = client.get(f"/sessions/{session['id']}/messages", headers=client_h).json()
    assert [m["content"] for m in messages] == ["Happy to help. When works?"]

    r = client.post(f"/ai/compose/{compose_id}/regenerate", headers=helper_h)
    assert r.json()["accepted"] is True and r.json()["compose"]["generation_count"] == 1

    assert client.delete(f"/ai/compose/{compose_id}", headers=helper_h).status_code == 204
    assert client.post(f"/ai/compose/{compose_id}/regenerate", headers=helper_h).status_code == 404


def test_compose_for_foreign_session_is_forbidden():
    helper_h, _ = helper_account(client, "nosy@example.com")
    other_h, other_id = helper_account(client, "other@example.com")
    client_h, _ = client_account(client, "cust@example.com")
    session = client.post("/sessions", json={"helper_id": other_id}, headers=client_h).json()
    r = client.post("/ai/compose", json={"request": ai_request(), "session_id": session["id"]}, headers=helper_h)
    assert r.status_code == 403


def test_settings_round_trip_and_custom_prompt_defaults():
    headers, _ = helper_account(client, "cfg@example.com")
    defaults = client.get("/ai/settings", headers=headers).json()
    assert defaults["enabled"] is False and defaults["max_daily_responses"] == 50

    defaults.update({"enabled": True, "tone": "friendly", "max_daily_responses": 5})
    defaults["custom_prompts"]["greeting"] = "Mention the free intro call"
    assert client.put("/ai/settings", json=defaults, headers=headers).status_code == 200
    saved = client.get("/ai/settings", headers=headers).json()
    assert saved["enabled"] is True and saved["tone"] == "friendly"
    assert saved["custom_prompts"]["greeting"] == "Mention the free intro call"


def test_daily_cap_and_dashboard():
    headers, _ = helper_account(client, "capped@example.com")
    settings = client.get("/ai/settings", headers=headers).json()
    settings["max_daily_responses"] = 2
    client.put("/ai/settings", json=settings, headers=headers)

    for _ in range(2):
        assert client.post("/ai/generate", json=ai_request(), headers=headers).status_code == 200
    r = client.post("/ai/generate", json=ai_request(), headers=headers)
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) >= 1

    stats = client.get("/ai/dashboard", headers=headers).json()
    assert stats["total_responses"] == 2
    assert stats["today_responses"] == 2
    assert stats["template"] == 2
    assert stats["remaining_today"] == 0
    assert len(stats["recent_activity"]) == 2
    assert stats["recent_activity"][0]["response_type"] == "consultation"
