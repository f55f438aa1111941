import asyncio
import logging

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from src.guruchat.api.main import app
from src.guruchat.api.routers.realtime import _stop_forwarder
from .utils import client_account, helper_account


client = TestClient(app)


def _token(headers):
    return headers["Authorization"].split(" ", 1)[1]


def _session(client_h, helper_id):
    r = client.post("/sessions", json={"helper_id": helper_id}, headers=client_h)
    assert r.status_code == 201
    return r.json()


def test_participant_receives_status_and_messages():
    helper_h, helper_id = helper_account(client, "live@example.com")
    client_h, _ = client_account(client, "watcher@example.com")
    session = _session(client_h, helper_id)

    with client.websocket_connect(f"/realtime/sessions/{session['id']}?token={_token(client_h)}") as ws:
        hello = ws.receive_json()
        assert hello == {"type": "subscribed", "session_id": session["id"], "status": "pending"}

        client.post(f"/sessions/{session['id']}/accept", headers=helper_h)
        update = ws.receive_json()
        assert update["table"] == "chat_sessions" and update["eventType"] == "UPDATE"
        assert update["new"]["status"] == "active"

        client.post(f"/sessions/{session['id']}/messages", json={"content": "Welcome!"}, headers=helper_h)
        event = ws.receive_json()
        assert event["table"] == "messages" and event["eventType"] == "INSERT"
        assert event["new"]["content"] == "Welcome!"


def test_non_participants_and_bad_tokens_are_refused():
    _, helper_id = helper_account(client, "priv@example.com")
    client_h, _ = client_account(client, "owner@example.com")
    outsider_h, _ = client_account(client, "snoop@example.com")
    session = _session(client_h, helper_id)

    for query in (f"?token={_token(outsider_h)}", "?token=garbage", ""):
        with pytest.raises(WebSocketDisconnect) as info:
            with client.websocket_connect(f"/realtime/sessions/{session['id']}{query}") as ws:
                ws.receive_json()
        assert info.value.code == 1008


def test_failed_forwarding_is_collected_and_logged(monkeypatch, caplog):
    monkeypatch.setattr(logging.getLogger("src.guruchat"), "propagate", True)

    async def broken_forwarder():
        raise RuntimeError("socket gone")

    async def scenario():
        task = asyncio.ensure_future(broken_forwarder())
        await asyncio.sleep(0)
        await _stop_forwarder(task, "s1")
        return task

    with caplog.at_level(logging.ERROR):
        task = asyncio.run(scenario())
    assert task.done()
    assert "Realtime forwarding failed session=s1" in caplog.text


def test_stopping_a_live_forwarder_cancels_it():
    async def idle_forwarder():
        await asyncio.sleep(60)

    async def scenario():
        task = asyncio.ensure_future(idle_forwarder())
        await asyncio.sleep(0)
        await _stop_forwarder(task, "s1")
        return task

    assert asyncio.run(scenario()).cancelled()
