"""Compose sessions: the professional's working draft of an AI reply.

A compose session holds at most one draft. Each generation (the first one
and every regeneration) counts against ``REGENERATION_LIMIT``; once the limit
is reached further requests are refused with a notice rather than an
exception. Sending the draft clears it and resets the counter. Drafts are
never persisted.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from threading import RLock
from typing import Callable, Dict, Optional

from ..core.clock import Clock, utc_now
from ..core.config import REGENERATION_LIMIT
from ..domain.ai_models import (
    AIResponseRequest,
    ComposeAttemptView,
    ComposeSendResult,
    ComposeView,
    ResponseType,
)
from ..domain.errors import NotFound, NotOwner, ValidationFailed
from .ai_responder import AIResponseGenerator, GenerationResult, get_response_generator

logger = logging.getLogger(__name__)

LIMIT_NOTICE = "Regeneration limit reached. Send or discard this draft to start over."
# Compose sessions untouched for this long are dropped.
COMPOSE_IDLE_SECONDS = 6 * 60 * 60


@dataclass
class ComposeSession:
    id: str
    professional_id: str
    request: AIResponseRequest
    session_id: Optional[str] = None
    draft: str = ""
    outcome: Optional[str] = None
    model: Optional[str] = None
    generation_count: int = 0
    touched_at: Optional[datetime] = None

    def view(self, limit: int) -> ComposeView:
        return ComposeView(
            compose_id=self.id,
            professional_id=self.professional_id,
            session_id=self.session_id,
            response_type=self.request.response_type,
            draft=self.draft,
            outcome=self.outcome,
            model=self.model,
            generation_count=self.generation_count,
            remaining_generations=max(limit - self.generation_count, 0),
        )


class ComposeManager:
    def __init__(
        self,
        generator: Optional[AIResponseGenerator] = None,
        limit: int = REGENERATION_LIMIT,
        idle_seconds: int = COMPOSE_IDLE_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self._generator = generator
        self.limit = limit
        self.idle = timedelta(seconds=idle_seconds)
        self.clock = clock
        self._sessions: Dict[str, ComposeSession] = {}
        self._lock = RLock()

    @property
    def generator(self) -> AIResponseGenerator:
        return self._generator or get_response_generator()

    def _expired(self, compose: ComposeSession) -> bool:
        return compose.touched_at is not None and self.clock() - compose.touched_at > self.idle

    def _sweep(self) -> None:
        for compose_id in [c.id for c in self._sessions.values() if self._expired(c)]:
            del self._sessions[compose_id]

    def _live(self, compose_id: str) -> ComposeSession:
        compose = self._sessions.get(compose_id)
        if compose is not None and self._expired(compose):
            del self._sessions[compose_id]
            compose = None
        if compose is None:
            raise NotFound("Compose session")
        return compose

    def _owned(self, compose_id: str, professional_id: str) -> ComposeSession:
        compose = self._live(compose_id)
        if compose.professional_id != professional_id:
            raise NotOwner("Compose session belongs to another professional")
        return compose

    def _apply(self, compose: ComposeSession, result: GenerationResult) -> None:
        compose.draft = result.text
        compose.outcome = result.outcome.value
        compose.model = result.model
        compose.generation_count += 1
        compose.touched_at = self.clock()

    def create(
        self,
        professional_id: str,
        request: AIResponseRequest,
        session_id: Optional[str] = None,
        custom_prompt: Optional[str] = None,
    ) -> ComposeAttemptView:
        compose = ComposeSession(
            id=uuid.uuid4().hex,
            professional_id=professional_id,
            request=request,
            session_id=session_id,
        )
        result = self.generator.generate(request, custom_prompt)
        with self._lock:
            self._sweep()
            self._apply(compose, result)
            self._sessions[compose.id] = compose
            view = compose.view(self.limit)
        logger.info("Compose %s started for %s outcome=%s", compose.id, professional_id, result.outcome.value)
        return ComposeAttemptView(compose=view, accepted=True)

    def get(self, compose_id: str, professional_id: str) -> ComposeView:
        with self._lock:
            return self._owned(compose_id, professional_id).view(self.limit)

    def request_of(self, compose_id: str) -> AIResponseRequest:
        with self._lock:
            return self._live(compose_id).request

    def regenerate(
        self,
        compose_id: str,
        professional_id: str,
        response_type: Optional[ResponseType] = None,
        custom_prompt: Optional[str] = None,
    ) -> ComposeAttemptView:
        with self._lock:
            compose = self._owned(compose_id, professional_id)
            if compose.generation_count >= self.limit:
                return ComposeAttemptView(compose=compose.view(self.limit), accepted=False, notice=LIMIT_NOTICE)
            if response_type and response_type != compose.request.response_type:
                compose.request = compose.request.model_copy(update={"response_type": response_type})
            request = compose.request
        result = self.generator.generate(request, custom_prompt)
        with self._lock:
            # Re-check: a concurrent regenerate may have used the last slot.
            if compose.generation_count >= self.limit:
                return ComposeAttemptView(compose=compose.view(self.limit), accepted=False, notice=LIMIT_NOTICE)
            self._apply(compose, result)
            return ComposeAttemptView(compose=compose.view(self.limit), accepted=True)

    def send(
        self,
        compose_id: str,
        professional_id: str,
        content: Optional[str] = None,
        deliver: Optional[Callable[[ComposeSession, str], Optional[str]]] = None,
    ) -> ComposeSendResult:
        """Hand the draft (or an edited ``content``) to ``deliver`` and reset.

        The counter and draft are only reset once delivery succeeds.
        """
        with self._lock:
            compose = self._owned(compose_id, professional_id)
            text = (content if content is not None else compose.draft).strip()
            snapshot = replace(compose)
        if not text:
            raise ValidationFailed("Nothing to send")
        message_id = deliver(snapshot, text) if deliver else None
        with self._lock:
            compose.draft = ""
            compose.outcome = None
            compose.model = None
            compose.generation_count = 0
            compose.touched_at = self.clock()
            view = compose.view(self.limit)
        logger.info("Compose %s sent by %s", compose_id, professional_id)
        return ComposeSendResult(compose=view, content=text, message_id=message_id)

    def discard(self, compose_id: str, professional_id: str) -> None:
        with self._lock:
            self._owned(compose_id, professional_id)
            del self._sessions[compose_id]


_manager: Optional[ComposeManager] = None


def get_compose_manager() -> ComposeManager:
    global _manager
    if _manager is None:
        _manager = ComposeManager()
    return _manager
