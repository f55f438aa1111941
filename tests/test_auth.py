from fastapi.testclient import TestClient

from src.guruchat.api.main import app
from .utils import signup


client = TestClient(app)


def test_signup_signin_and_me():
    headers, payload = signup(client, "nina@example.com", name="Nina")
    assert payload["user"]["roles"] == ["user"]
    assert payload["token_type"] == "bearer"

    r = client.get("/auth/me", headers=headers)
    assert r.status_code == 200
    assert r.json()["email"] == "nina@example.com"

    r = client.post("/auth/signin", json={"email": "NINA@example.com", "password": "secret123"})
    assert r.status_code == 200
    assert r.json()["user"]["id"] == payload["user"]["id"]


def test_helper_signup_gets_helper_role_and_profile():
    headers, payload = signup(client, "hari@example.com", name="Hari", is_helper=True)
    assert set(payload["user"]["roles"]) == {"user", "helper"}
    profile = client.get("/profiles/me", headers=headers).json()
    assert profile["is_helper"] is True and profile["display_name"] == "Hari"


def test_password_mismatch_is_rejected():
    r = client.post(
        "/auth/signup",
        json={
            "email": "mia@example.com",
            "password": "secret123",
            "confirm_password": "secret124",
            "display_name": "Mia",
        },
    )
    assert r.status_code == 422


def test_duplicate_signup_conflicts():
    signup(client, "dup@example.com")
    r = client.post(
        "/auth/signup",
        json={"email": "dup@example.com", "password": "secret123", "confirm_password": "secret123", "display_name": "D"},
    )
    assert r.status_code == 409


def test_wrong_password_and_bad_token():
    signup(client, "omar@example.com")
    r = client.post("/auth/signin", json={"email": "omar@example.com", "password": "nope-nope"})
    assert r.status_code == 401
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_configured_admin_email_gets_admin_role(monkeypatch):
    monkeypatch.setenv("GURUCHAT_ADMIN_EMAILS", "boss@example.com")
    _, payload = signup(client, "boss@example.com")
    assert "admin" in payload["user"]["roles"]


def test_signin_is_rate_limited(monkeypatch):
    monkeypatch.setenv("GURUCHAT_AUTH_RATE_LIMIT", "2")
    signup(client, "rita@example.com")
    body = {"email": "rita@example.com", "password": "wrong-pass"}
    assert client.post("/auth/signin", json=body).status_code == 401
    assert client.post("/auth/signin", json=body).status_code == 401
    r = client.post("/auth/signin", json=body)
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) >= 1
