from __future__ import annotations

import logging
from typing import Optional
from fastapi import APIRouter, Body, Depends, Response, status

from ...domain.ai_models import (
    AIResponsePayload,
    AIResponseRequest,
    AutoReplySettings,
    ComposeAttemptView,
    ComposeCreate,
    ComposeRegenerate,
    ComposeSend,
    ComposeSendResult,
    DashboardStats,
)
from ...domain.errors import DOMAIN_ERRORS
from ...security.auth import User
from ...security.rate_limit import AI_GENERATE, RateLimitExceeded, rate_limit_action
from ...security.rbac import Permission, require_permission
from ...services.ai_responder import get_response_generator
from ...services.auto_reply import AutoReplySettingsStore, get_activity_log
from ...services.compose import ComposeSession, get_compose_manager
from ...services.sessions import ChatSessionService
from ..errors import http_error

LOG = logging.getLogger("guruchat.ai")

router = APIRouter(prefix="/ai", tags=["ai"])


def _admit(user: User, settings: AutoReplySettings) -> None:
    """Apply the per-minute rate limit and the daily cap before a generation."""
    try:
        rate_limit_action(AI_GENERATE, user.id)
        get_activity_log().check_daily_cap(user.id, settings.max_daily_responses)
    except RateLimitExceeded as exc:
        LOG.info("ai_request_throttled", extra={"user_id": user.id, "reason": exc.reason})
        raise http_error(exc) from exc


@router.post("/generate", response_model=AIResponsePayload)
@router.post("/gemini-response", response_model=AIResponsePayload, include_in_schema=False)
def generate(
    req: AIResponseRequest,
    user: User = Depends(require_permission(Permission.AI_COMPOSE)),
) -> AIResponsePayload:
    store = AutoReplySettingsStore()
    settings = store.get(user.id)
    _admit(user, settings)
    result = get_response_generator().generate(req, store.custom_prompt(user.id, req.response_type))
    get_activity_log().record(user.id, req, result.outcome.value)
    return result.to_payload()


@router.post("/compose", response_model=ComposeAttemptView, status_code=status.HTTP_201_CREATED)
def start_compose(
    req: ComposeCreate,
    user: User = Depends(require_permission(Permission.AI_COMPOSE)),
) -> ComposeAttemptView:
    if req.session_id:
        try:
            ChatSessionService().get_for(user.id, req.session_id)
        except DOMAIN_ERRORS as exc:
            raise http_error(exc)
    store = AutoReplySettingsStore()
    _admit(user, store.get(user.id))
    attempt = get_compose_manager().create(
        user.id,
        req.request,
        session_id=req.session_id,
        custom_prompt=store.custom_prompt(user.id, req.request.response_type),
    )
    get_activity_log().record(user.id, req.request, attempt.compose.outcome or "error")
    return attempt


@router.post("/compose/{compose_id}/regenerate", response_model=ComposeAttemptView)
def regenerate(
    compose_id: str,
    req: Optional[ComposeRegenerate] = Body(None),
    user: User = Depends(require_permission(Permission.AI_COMPOSE)),
) -> ComposeAttemptView:
    req = req or ComposeRegenerate()
    manager = get_compose_manager()
    store = AutoReplySettingsStore()
    try:
        current = manager.get(compose_id, user.id)
        if current.remaining_generations > 0:
            _admit(user, store.get(user.id))
        response_type = req.response_type or current.response_type
        attempt = manager.regenerate(
            compose_id,
            user.id,
            response_type=req.response_type,
            custom_prompt=store.custom_prompt(user.id, response_type),
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)
    if attempt.accepted:
        request = manager.request_of(compose_id)
        get_activity_log().record(user.id, request, attempt.compose.outcome or "error")
    return attempt


@router.post("/compose/{compose_id}/send", response_model=ComposeSendResult)
def send_compose(
    compose_id: str,
    req: Optional[ComposeSend] = Body(None),
    user: User = Depends(require_permission(Permission.AI_COMPOSE)),
) -> ComposeSendResult:
    content = req.content if req else None

    def deliver(compose: ComposeSession, text: str):
        if not compose.session_id:
            return None
        return ChatSessionService().send_message(user.id, compose.session_id, text).id

    try:
        return get_compose_manager().send(compose_id, user.id, content, deliver=deliver)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.delete("/compose/{compose_id}", status_code=status.HTTP_204_NO_CONTENT)
def discard_compose(
    compose_id: str,
    user: User = Depends(require_permission(Permission.AI_COMPOSE)),
) -> Response:
    try:
        get_compose_manager().discard(compose_id, user.id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/settings", response_model=AutoReplySettings)
def get_settings(user: User = Depends(require_permission(Permission.AI_COMPOSE))) -> AutoReplySettings:
    return AutoReplySettingsStore().get(user.id)


@router.put("/settings", response_model=AutoReplySettings)
def save_settings(
    settings: AutoReplySettings,
    user: User = Depends(require_permission(Permission.AI_COMPOSE)),
) -> AutoReplySettings:
    return AutoReplySettingsStore().save(user.id, settings)


@router.get("/dashboard", response_model=DashboardStats)
def dashboard(user: User = Depends(require_permission(Permission.AI_COMPOSE))) -> DashboardStats:
    settings = AutoReplySettingsStore().get(user.id)
    return get_activity_log().dashboard(user.id, settings.max_daily_responses)
