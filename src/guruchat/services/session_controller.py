"""Client-side view of one chat session.

The controller keeps a local copy of the session and its message log, fed by
realtime change events. Events may arrive twice or out of order, so applying
them is idempotent: messages are keyed by id and kept sorted by
``(created_at, id)``; session snapshots that would move the status backwards
are ignored. Commands go to the server and only the server's confirmed answer
is applied locally.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from ..core.state_machine import status_rank
from ..domain.errors import DOMAIN_ERRORS
from ..domain.models import ChatSession, Message
from ..infrastructure.realtime import ChangeEvent, Channel, RealtimeNotifier, Subscription, get_notifier
from .auth_context import AuthContext
from .sessions import ChatSessionService

logger = logging.getLogger(__name__)

BACKEND_ERROR = "Something went wrong. Please try again."


class ChatSessionController:
    def __init__(
        self,
        auth: AuthContext,
        session_id: str,
        service: Optional[ChatSessionService] = None,
        notifier: Optional[RealtimeNotifier] = None,
    ) -> None:
        self.auth = auth
        self.session_id = session_id
        self.service = service or ChatSessionService()
        self._notifier = notifier
        self.session: Optional[ChatSession] = None
        self._messages: Dict[str, Message] = {}
        self.last_error: Optional[str] = None
        self.channel = Channel()
        self._subscriptions: List[Subscription] = []

    @property
    def notifier(self) -> RealtimeNotifier:
        return self._notifier or get_notifier()

    @property
    def messages(self) -> List[Message]:
        return sorted(self._messages.values(), key=lambda m: (m.created_at, m.id))

    @property
    def is_open(self) -> bool:
        return bool(self._subscriptions)

    def open(self) -> "ChatSessionController":
        session = self.service.get_for(self.auth.user_id, self.session_id)
        column = session.participant_column(self.auth.user_id)
        # Subscribe before the initial fetch so nothing slips between the two.
        self._subscriptions = [
            self.notifier.subscribe("messages", "INSERT", ("session_id", self.session_id), self.channel),
            self.notifier.subscribe("chat_sessions", "UPDATE", (column, self.auth.user_id), self.channel),
        ]
        self.auth.register(self)
        self.resync()
        return self

    def resync(self) -> None:
        self.session = self.service.get_for(self.auth.user_id, self.session_id)
        self._messages = {m.id: m for m in self.service.list_messages(self.session_id)}

    # -- event application -------------------------------------------------

    def apply(self, event: ChangeEvent) -> bool:
        """Fold one change event into the local view; returns True if it changed."""
        if event.table == "messages":
            return self._apply_message(Message.model_validate(event.new))
        if event.table == "chat_sessions":
            return self._apply_session(ChatSession.model_validate(event.new))
        return False

    def _apply_message(self, message: Message) -> bool:
        if message.session_id != self.session_id or message.id in self._messages:
            return False
        self._messages[message.id] = message
        return True

    def _apply_session(self, incoming: ChatSession) -> bool:
        if incoming.id != self.session_id:
            return False
        if self.session is not None and status_rank(incoming.status) < status_rank(self.session.status):
            return False
        if incoming == self.session:
            return False
        self.session = incoming
        return True

    def pump(self, timeout: float = 0.0) -> int:
        """Apply every queued event; waits up to ``timeout`` for the first one."""
        applied = 0
        first = self.channel.get(timeout)
        if first is None:
            return 0
        for event in [first, *self.channel.drain()]:
            if self.apply(event):
                applied += 1
        return applied

    async def run(self, on_change: Optional[Callable[[ChangeEvent], None]] = None) -> None:
        """Consume events until the controller is closed."""
        while self.is_open:
            event = await self.channel.next_event()
            if event is None:
                return
            if self.apply(event) and on_change is not None:
                on_change(event)

    # -- commands ----------------------------------------------------------

    def _fail(self, action: str, exc: Exception) -> None:
        self.last_error = str(exc)
        logger.warning("Session %s %s failed: %s", self.session_id, action, exc)

    def _backend_failed(self, action: str) -> None:
        # Local view stays as the server last confirmed it.
        self.last_error = BACKEND_ERROR
        logger.exception("Session %s %s failed on the backend", self.session_id, action)

    def send(self, content: str, message_type: str = "text") -> Optional[Message]:
        try:
            message = self.service.send_message(self.auth.user_id, self.session_id, content, message_type)
        except DOMAIN_ERRORS as exc:
            self._fail("send", exc)
            return None
        except Exception:
            self._backend_failed("send")
            return None
        self.last_error = None
        self._apply_message(message)
        return message

    def _command(self, action: str, call: Callable[[], ChatSession]) -> Optional[ChatSession]:
        try:
            session = call()
        except DOMAIN_ERRORS as exc:
            self._fail(action, exc)
            return None
        except Exception:
            self._backend_failed(action)
            return None
        self.last_error = None
        self._apply_session(session)
        return session

    def accept(self) -> Optional[ChatSession]:
        return self._command("accept", lambda: self.service.accept(self.auth.user_id, self.session_id))

    def reject(self) -> Optional[ChatSession]:
        return self._command("reject", lambda: self.service.reject(self.auth.user_id, self.session_id))

    def end(self) -> Optional[ChatSession]:
        return self._command("end", lambda: self.service.end(self.auth.user_id, self.session_id))

    @property
    def can_respond(self) -> bool:
        """Whether the viewer is the helper of a pending session."""
        return bool(
            self.session
            and self.session.status == "pending"
            and self.session.helper_id == self.auth.user_id
        )

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions = []
        self.channel.close()
        self.auth.unregister(self)

    def __enter__(self) -> "ChatSessionController":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()
