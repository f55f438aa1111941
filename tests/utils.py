from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from fastapi.testclient import TestClient


def signup(
    client: TestClient,
    email: str,
    *,
    name: Optional[str] = None,
    is_helper: bool = False,
    password: str = "secret123",
) -> Tuple[Dict[str, str], Dict[str, Any]]:
    """Create an account, returning auth headers and the token payload."""
    body = {
        "email": email,
        "password": password,
        "confirm_password": password,
        "display_name": name or email.split("@")[0].title(),
        "is_helper": is_helper,
    }
    res = client.post("/auth/signup", json=body)
    assert res.status_code == 201, res.text
    data = res.json()
    return {"Authorization": f"Bearer {data['access_token']}"}, data


def helper_account(
    client: TestClient,
    email: str,
    *,
    name: Optional[str] = None,
    rate: int = 500,
    specialties: Optional[List[str]] = None,
) -> Tuple[Dict[str, str], str]:
    """Sign up an available helper with an hourly rate; returns (headers, user_id)."""
    headers, data = signup(client, email, name=name, is_helper=True)
    res = client.patch(
        "/profiles/me",
        json={
            "hourly_rate": rate,
            "is_available": True,
            "specialties": specialties or ["Career coaching"],
            "experience": "5 years",
        },
        headers=headers,
    )
    assert res.status_code == 200, res.text
    return headers, data["user"]["id"]


def client_account(client: TestClient, email: str, *, name: Optional[str] = None) -> Tuple[Dict[str, str], str]:
    headers, data = signup(client, email, name=name)
    return headers, data["user"]["id"]


def admin_headers(client: TestClient, email: str = "admin@example.com") -> Dict[str, str]:
    from src.guruchat.services.profiles import ProfileService

    headers, data = signup(client, email, name="Admin")
    ProfileService().grant_role(data["user"]["id"], "admin")
    return headers


def ai_request(
    message: str = "Can you help me prepare for an interview?",
    response_type: str = "consultation",
    tone: str = "professional",
) -> Dict[str, Any]:
    return {
        "clientMessage": message,
        "professionalContext": {
            "name": "Asha",
            "specialty": "career coaching",
            "experience": "8 years",
            "tone": tone,
        },
        "responseType": response_type,
    }
