from __future__ import annotations

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from ...domain.errors import DOMAIN_ERRORS
from ...domain.models import (
    ChatSession,
    ChatSessionCreate,
    ChatSessionWithMessages,
    Message,
    MessageCreate,
    SessionStatus,
    SessionSummary,
)
from ...security.auth import User
from ...security.rbac import Permission, require_permission
from ...services.sessions import ChatSessionService
from ..errors import http_error

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=ChatSession, status_code=status.HTTP_201_CREATED)
def request_session(
    req: ChatSessionCreate,
    user: User = Depends(require_permission(Permission.SESSION_WRITE)),
) -> ChatSession:
    try:
        return ChatSessionService().request_session(user.id, req.helper_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.get("", response_model=List[SessionSummary])
def session_history(
    status_filter: Optional[SessionStatus] = Query(None, alias="status"),
    user: User = Depends(require_permission(Permission.SESSION_READ)),
) -> List[SessionSummary]:
    return ChatSessionService().history(user.id, status_filter)


@router.get("/pending", response_model=List[SessionSummary])
def pending_requests(user: User = Depends(require_permission(Permission.SESSION_RESPOND))) -> List[SessionSummary]:
    return ChatSessionService().pending_requests(user.id)


@router.get("/{session_id}", response_model=ChatSessionWithMessages)
def get_session(
    session_id: str,
    user: User = Depends(require_permission(Permission.SESSION_READ)),
) -> ChatSessionWithMessages:
    service = ChatSessionService()
    try:
        session = service.get_for(user.id, session_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)
    return ChatSessionWithMessages(session=session, messages=service.list_messages(session_id))


@router.post("/{session_id}/accept", response_model=ChatSession)
def accept_session(
    session_id: str,
    user: User = Depends(require_permission(Permission.SESSION_RESPOND)),
) -> ChatSession:
    try:
        return ChatSessionService().accept(user.id, session_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.post("/{session_id}/reject", response_model=ChatSession)
def reject_session(
    session_id: str,
    user: User = Depends(require_permission(Permission.SESSION_RESPOND)),
) -> ChatSession:
    try:
        return ChatSessionService().reject(user.id, session_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.post("/{session_id}/end", response_model=ChatSession)
def end_session(
    session_id: str,
    user: User = Depends(require_permission(Permission.SESSION_WRITE)),
) -> ChatSession:
    try:
        return ChatSessionService().end(user.id, session_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.get("/{session_id}/messages", response_model=List[Message])
def list_messages(
    session_id: str,
    user: User = Depends(require_permission(Permission.SESSION_READ)),
) -> List[Message]:
    try:
        return ChatSessionService().messages_for(user.id, session_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.post("/{session_id}/messages", response_model=Message, status_code=status.HTTP_201_CREATED)
def post_message(
    session_id: str,
    msg: MessageCreate,
    user: User = Depends(require_permission(Permission.SESSION_WRITE)),
) -> Message:
    try:
        return ChatSessionService().send_message(user.id, session_id, msg.content, msg.message_type)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)
