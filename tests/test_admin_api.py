from fastapi.testclient import TestClient

from src.guruchat.api.main import app
from .utils import admin_headers, client_account, helper_account


client = TestClient(app)


def test_admin_routes_require_admin_role():
    headers, _ = client_account(client, "nobody@example.com")
    for path in ("/admin/stats", "/admin/users", "/admin/sessions", "/admin/payments"):
        assert client.get(path, headers=headers).status_code == 403
    assert client.get("/admin/stats").status_code == 401


def test_stats_users_and_payments():
    admin = admin_headers(client)
    seller_h, _ = helper_account(client, "seller@example.com", name="Sana")
    buyer_h, _ = client_account(client, "buyer@example.com", name="Bo")
    product = client.post(
        "/marketplace/products", json={"title": "Pack", "price_paise": 25_040}, headers=seller_h
    ).json()
    client.post(f"/marketplace/products/{product['id']}/purchase", headers=buyer_h)

    stats = client.get("/admin/stats", headers=admin).json()
    assert stats["total_users"] == 3
    assert stats["total_helpers"] == 1
    assert stats["total_revenue"] == 250

    users = client.get("/admin/users", headers=admin).json()
    roles = {u["profile"]["display_name"]: u["roles"] for u in users}
    assert roles["Admin"] == ["user", "admin"]

    payments = client.get("/admin/payments", headers=admin).json()
    assert len(payments) == 1
    assert payments[0]["client_name"] == "Bo" and payments[0]["helper_name"] == "Sana"
    assert payments[0]["payment"]["payment_type"] == "product"


def test_role_changes_sync_helper_flag():
    admin = admin_headers(client)
    _, user_id = client_account(client, "promote@example.com")

    r = client.post(f"/admin/users/{user_id}/roles", json={"role": "helper", "action": "add"}, headers=admin)
    assert r.status_code == 200 and "helper" in r.json()["roles"]
    assert client.get(f"/profiles/{user_id}", headers=admin).json()["is_helper"] is True

    r = client.post(f"/admin/users/{user_id}/roles", json={"role": "helper", "action": "remove"}, headers=admin)
    assert "helper" not in r.json()["roles"]
    assert client.get(f"/profiles/{user_id}", headers=admin).json()["is_helper"] is False

    assert client.post("/admin/users/ghost/roles", json={"role": "admin", "action": "add"}, headers=admin).status_code == 404
    assert client.post(f"/admin/users/{user_id}/roles", json={"role": "root", "action": "add"}, headers=admin).status_code == 422


def test_admin_status_changes_follow_lifecycle():
    admin = admin_headers(client)
    _, helper_id = helper_account(client, "hel@example.com")
    client_h, _ = client_account(client, "cli@example.com")
    session = client.post("/sessions", json={"helper_id": helper_id}, headers=client_h).json()

    listed = client.get("/admin/sessions", headers=admin).json()
    assert listed[0]["session"]["id"] == session["id"]

    r = client.post(f"/admin/sessions/{session['id']}/status", json={"status": "completed"}, headers=admin)
    assert r.status_code == 409
    r = client.post(f"/admin/sessions/{session['id']}/status", json={"status": "cancelled"}, headers=admin)
    assert r.status_code == 200 and r.json()["status"] == "cancelled"
    assert client.post("/admin/sessions/missing/status", json={"status": "active"}, headers=admin).status_code == 404


def test_revoked_admin_loses_access_immediately():
    from src.guruchat.services.profiles import ProfileService

    admin = admin_headers(client, "temp-admin@example.com")
    me = client.get("/auth/me", headers=admin).json()
    ProfileService().revoke_role(me["id"], "admin")
    assert client.get("/admin/stats", headers=admin).status_code == 403
