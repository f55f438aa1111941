from __future__ import annotations

import logging
from typing import Dict, List, Optional

from ..domain.models import (
    AdminPayment,
    AdminSession,
    AdminStats,
    ChatSession,
    Payment,
    Profile,
    SessionStatus,
    UserWithRoles,
)
from ..infrastructure.tables import TableStore, eq, get_table_store
from .profiles import ProfileService
from .sessions import ChatSessionService

logger = logging.getLogger(__name__)


class AdminService:
    """Read models and maintenance actions for the admin panel."""

    def __init__(
        self,
        store: Optional[TableStore] = None,
        profiles: Optional[ProfileService] = None,
        sessions: Optional[ChatSessionService] = None,
    ) -> None:
        self._store = store
        self.profiles = profiles or ProfileService(store)
        self.sessions = sessions or ChatSessionService(store, self.profiles)

    @property
    def store(self) -> TableStore:
        return self._store or get_table_store()

    def _names(self) -> Dict[str, str]:
        return {r["user_id"]: r.get("display_name") for r in self.store.select("profiles")}

    def stats(self) -> AdminStats:
        profiles = self.store.select("profiles")
        sessions = self.store.select("chat_sessions")
        payments = self.store.select("payments")
        revenue_minor = sum(int(p.get("amount") or 0) for p in payments)
        return AdminStats(
            total_users=len(profiles),
            total_helpers=sum(1 for p in profiles if p.get("is_helper")),
            total_sessions=len(sessions),
            active_sessions=sum(1 for s in sessions if s.get("status") == "active"),
            pending_sessions=sum(1 for s in sessions if s.get("status") == "pending"),
            total_revenue=round(revenue_minor / 100),
        )

    def users(self) -> List[UserWithRoles]:
        rows = self.store.select("profiles", order_by="created_at", descending=True)
        roles: Dict[str, List[str]] = {}
        for r in self.store.select("user_roles", order_by="created_at"):
            roles.setdefault(r["user_id"], []).append(r["role"])
        return [UserWithRoles(profile=Profile.model_validate(r), roles=roles.get(r["user_id"], [])) for r in rows]

    def update_role(self, user_id: str, role: str, action: str) -> List[str]:
        self.profiles.get_profile(user_id)
        if action == "add":
            result = self.profiles.grant_role(user_id, role)
        else:
            result = self.profiles.revoke_role(user_id, role)
        logger.info("Admin role change user=%s role=%s action=%s", user_id, role, action)
        return result

    def list_sessions(self) -> List[AdminSession]:
        names = self._names()
        rows = self.store.select("chat_sessions", order_by="created_at", descending=True)
        out: List[AdminSession] = []
        for row in rows:
            session = ChatSession.model_validate(row)
            out.append(
                AdminSession(
                    session=session,
                    client_name=names.get(session.client_id),
                    helper_name=names.get(session.helper_id),
                )
            )
        return out

    def set_session_status(self, session_id: str, status: SessionStatus) -> ChatSession:
        return self.sessions.set_status(session_id, status)

    def payments(self) -> List[AdminPayment]:
        names = self._names()
        rows = self.store.select("payments", order_by="created_at", descending=True)
        return [
            AdminPayment(
                payment=Payment.model_validate(r),
                client_name=names.get(r["client_id"]),
                helper_name=names.get(r.get("helper_id") or ""),
            )
            for r in rows
        ]
