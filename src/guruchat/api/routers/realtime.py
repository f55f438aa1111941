from __future__ import annotations

import asyncio
import contextlib
import logging
from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from ...domain.errors import DOMAIN_ERRORS
from ...infrastructure.realtime import Channel, get_notifier
from ...security.auth import decode_token
from ...services.sessions import ChatSessionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime", tags=["realtime"])


async def _forward(websocket: WebSocket, channel: Channel, session_id: str) -> None:
    while True:
        event = await channel.next_event()
        if event is None:
            return
        if event.table == "chat_sessions" and event.new.get("id") != session_id:
            continue
        await websocket.send_json(event.to_payload())


async def _stop_forwarder(forwarder: "asyncio.Task[None]", session_id: str) -> None:
    forwarder.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        try:
            await forwarder
        except Exception:
            logger.exception("Realtime forwarding failed session=%s", session_id)


@router.websocket("/sessions/{session_id}")
async def session_events(websocket: WebSocket, session_id: str) -> None:
    """Stream message inserts and status updates for one session to a participant."""
    token = websocket.query_params.get("token", "")
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        user = decode_token(token)
        session = ChatSessionService().get_for(user.id, session_id)
    except (HTTPException, *DOMAIN_ERRORS):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    notifier = get_notifier()
    channel = Channel()
    subscriptions = [
        notifier.subscribe("messages", "INSERT", ("session_id", session_id), channel),
        notifier.subscribe("chat_sessions", "UPDATE", (session.participant_column(user.id), user.id), channel),
    ]
    await websocket.accept()
    await websocket.send_json({"type": "subscribed", "session_id": session_id, "status": session.status})
    forwarder = asyncio.create_task(_forward(websocket, channel, session_id))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Realtime client left session=%s user=%s", session_id, user.id)
    finally:
        channel.close()
        for sub in subscriptions:
            sub.close()
        await _stop_forwarder(forwarder, session_id)
