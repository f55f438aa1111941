"""Server-side chat session lifecycle and message log.

Every status change goes through ``ensure_transition`` and is written with a
conditional update on the status the caller observed, so two racing writers
cannot both move the same session. Change events emitted by the table store
drive realtime delivery to the participants.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from ..core.clock import Clock, ensure_utc, isoformat_utc, utc_now
from ..core.state_machine import duration_minutes, ensure_transition, is_terminal, session_amount
from ..domain.errors import (
    InvalidTransition,
    NotFound,
    NotParticipant,
    SessionClosed,
    ValidationFailed,
)
from ..domain.models import ChatSession, Message, SessionStatus, SessionSummary
from ..infrastructure.tables import TableStore, eq, get_table_store
from .profiles import ProfileService

logger = logging.getLogger(__name__)


class ChatSessionService:
    def __init__(
        self,
        store: Optional[TableStore] = None,
        profiles: Optional[ProfileService] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self.profiles = profiles or ProfileService(store)
        self._clock = clock

    @property
    def store(self) -> TableStore:
        return self._store or get_table_store()

    def clock(self) -> datetime:
        return (self._clock or utc_now)()

    # -- reads -------------------------------------------------------------

    def get_session(self, session_id: str) -> ChatSession:
        row = self.store.get("chat_sessions", session_id)
        if row is None:
            raise NotFound("Session")
        return ChatSession.model_validate(row)

    def get_for(self, user_id: str, session_id: str) -> ChatSession:
        session = self.get_session(session_id)
        if session.participant_column(user_id) is None:
            raise NotParticipant("Not a participant in this session")
        return session

    def list_messages(self, session_id: str) -> List[Message]:
        # Stable sort keeps insertion order for equal timestamps.
        rows = self.store.select("messages", [eq("session_id", session_id)], order_by="created_at")
        return [Message.model_validate(r) for r in rows]

    def messages_for(self, user_id: str, session_id: str) -> List[Message]:
        self.get_for(user_id, session_id)
        return self.list_messages(session_id)

    def _summaries(self, rows: List[dict], user_id: str) -> List[SessionSummary]:
        out: List[SessionSummary] = []
        for row in rows:
            session = ChatSession.model_validate(row)
            counterpart = session.counterpart_of(user_id)
            out.append(
                SessionSummary(
                    session=session,
                    counterpart_id=counterpart,
                    counterpart_name=self.profiles.display_name(counterpart),
                )
            )
        return out

    def pending_requests(self, helper_id: str) -> List[SessionSummary]:
        rows = self.store.select(
            "chat_sessions",
            [eq("helper_id", helper_id), eq("status", "pending")],
            order_by="created_at",
            descending=True,
        )
        return self._summaries(rows, helper_id)

    def history(self, user_id: str, status: Optional[SessionStatus] = None) -> List[SessionSummary]:
        """Sessions the user took part in (either side), newest first."""
        extra = [eq("status", status)] if status else []
        rows = self.store.select("chat_sessions", [eq("client_id", user_id), *extra])
        rows += self.store.select("chat_sessions", [eq("helper_id", user_id), *extra])
        seen = set()
        unique = []
        for row in rows:
            if row["id"] not in seen:
                seen.add(row["id"])
                unique.append(row)
        unique.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return self._summaries(unique, user_id)

    # -- lifecycle ---------------------------------------------------------

    def request_session(self, client_id: str, helper_id: str) -> ChatSession:
        if client_id == helper_id:
            raise ValidationFailed("You cannot request a session with yourself")
        helper = self.profiles.find_profile(helper_id)
        if helper is None or not helper.is_helper:
            raise NotFound("Helper")
        if not helper.is_available:
            raise ValidationFailed("Helper is not available")
        row = self.store.insert(
            "chat_sessions",
            {
                "client_id": client_id,
                "helper_id": helper_id,
                "status": "pending",
                "hourly_rate": helper.hourly_rate,
                "started_at": None,
                "ended_at": None,
                "duration_minutes": 0,
                "total_amount": None,
                "created_at": isoformat_utc(self.clock()),
            },
        )
        logger.info("Session %s requested client=%s helper=%s", row["id"], client_id, helper_id)
        return ChatSession.model_validate(row)

    def _transition(self, session: ChatSession, target: str, values: Optional[dict] = None) -> ChatSession:
        ensure_transition(session.status, target)
        updated = self.store.update(
            "chat_sessions",
            [eq("id", session.id), eq("status", session.status)],
            {"status": target, **(values or {})},
        )
        if not updated:
            # Lost the race; report against the status that won.
            current = self.get_session(session.id)
            raise InvalidTransition(current.status, target)
        logger.info("Session %s %s -> %s", session.id, session.status, target)
        return ChatSession.model_validate(updated[0])

    def _require_helper(self, helper_id: str, session_id: str) -> ChatSession:
        session = self.get_session(session_id)
        if session.helper_id != helper_id:
            raise NotParticipant("Only the session's helper can respond to this request")
        return session

    def accept(self, helper_id: str, session_id: str) -> ChatSession:
        session = self._require_helper(helper_id, session_id)
        return self._transition(session, "active", {"started_at": isoformat_utc(self.clock())})

    def reject(self, helper_id: str, session_id: str) -> ChatSession:
        session = self._require_helper(helper_id, session_id)
        return self._transition(session, "cancelled")

    def end(self, user_id: str, session_id: str, ended_at: Optional[datetime] = None) -> ChatSession:
        session = self.get_for(user_id, session_id)
        return self._complete(session, ended_at)

    def _complete(self, session: ChatSession, ended_at: Optional[datetime]) -> ChatSession:
        ensure_transition(session.status, "completed")
        ended = ensure_utc(ended_at or self.clock())
        started = session.started_at or ended
        if ended < started:
            raise ValidationFailed("A session cannot end before it started")
        minutes = duration_minutes(started, ended)
        completed = self._transition(
            session,
            "completed",
            {
                "ended_at": isoformat_utc(ended),
                "duration_minutes": minutes,
                "total_amount": session_amount(session.hourly_rate, minutes),
            },
        )
        self._bump_helper_sessions(session.helper_id)
        return completed

    def _bump_helper_sessions(self, helper_id: str) -> None:
        profile = self.profiles.find_profile(helper_id)
        if profile is None:
            return
        self.store.update("profiles", [eq("user_id", helper_id)], {"total_sessions": profile.total_sessions + 1})

    def set_status(self, session_id: str, target: SessionStatus, at: Optional[datetime] = None) -> ChatSession:
        """Administrative status change; same transition rules as participants."""
        session = self.get_session(session_id)
        if target == "completed":
            return self._complete(session, at)
        values = {}
        if target == "active":
            values["started_at"] = isoformat_utc(at or self.clock())
        return self._transition(session, target, values)

    # -- messages ----------------------------------------------------------

    def send_message(self, sender_id: str, session_id: str, content: str, message_type: str = "text") -> Message:
        session = self.get_for(sender_id, session_id)
        if is_terminal(session.status):
            raise SessionClosed(f"Session is {session.status}")
        text = (content or "").strip()
        if not text:
            raise ValidationFailed("Message cannot be empty")
        row = self.store.insert(
            "messages",
            {
                "session_id": session_id,
                "sender_id": sender_id,
                "content": text,
                "message_type": message_type or "text",
                "created_at": isoformat_utc(self.clock()),
            },
        )
        return Message.model_validate(row)
