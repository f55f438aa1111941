from __future__ import annotations

import logging
from typing import List, Optional

from ..domain.errors import NotFound, ValidationFailed
from ..domain.models import Profile, ProfileUpdate
from ..infrastructure.tables import TableStore, eq, get_table_store

logger = logging.getLogger(__name__)

ROLES = ("user", "helper", "admin")


class ProfileService:
    """Profiles, the helper directory, and role assignments."""

    def __init__(self, store: Optional[TableStore] = None) -> None:
        self._store = store

    @property
    def store(self) -> TableStore:
        return self._store or get_table_store()

    def create_profile(
        self,
        user_id: str,
        display_name: str,
        email: Optional[str] = None,
        is_helper: bool = False,
        roles: tuple[str, ...] = (),
    ) -> Profile:
        row = self.store.insert(
            "profiles",
            {
                "user_id": user_id,
                "display_name": display_name,
                "email": email,
                "is_helper": is_helper,
                "is_available": is_helper,
                "hourly_rate": 0,
                "specialties": [],
                "rating": 0.0,
                "total_sessions": 0,
            },
        )
        wanted = ["user"]
        if is_helper:
            wanted.append("helper")
        wanted.extend(r for r in roles if r not in wanted)
        for role in wanted:
            self.grant_role(user_id, role)
        return Profile.model_validate(row)

    def find_profile(self, user_id: str) -> Optional[Profile]:
        row = self.store.get("profiles", user_id)
        return Profile.model_validate(row) if row else None

    def get_profile(self, user_id: str) -> Profile:
        profile = self.find_profile(user_id)
        if profile is None:
            raise NotFound("Profile")
        return profile

    def display_name(self, user_id: str) -> Optional[str]:
        profile = self.find_profile(user_id)
        return profile.display_name if profile else None

    def list_helpers(self, search: Optional[str] = None) -> List[Profile]:
        rows = self.store.select(
            "profiles",
            [eq("is_helper", True), eq("is_available", True)],
            order_by="rating",
            descending=True,
        )
        helpers = [Profile.model_validate(r) for r in rows]
        term = (search or "").strip().lower()
        if not term:
            return helpers
        return [
            p
            for p in helpers
            if term in p.display_name.lower() or any(term in s.lower() for s in p.specialties)
        ]

    def update_profile(self, user_id: str, changes: ProfileUpdate) -> Profile:
        values = changes.model_dump(exclude_unset=True)
        if "display_name" in values and not (values["display_name"] or "").strip():
            raise ValidationFailed("Display name cannot be empty")
        if not values:
            return self.get_profile(user_id)
        updated = self.store.update("profiles", [eq("user_id", user_id)], values)
        if not updated:
            raise NotFound("Profile")
        return Profile.model_validate(updated[0])

    def list_roles(self, user_id: str) -> List[str]:
        rows = self.store.select("user_roles", [eq("user_id", user_id)], order_by="created_at")
        return [r["role"] for r in rows]

    def grant_role(self, user_id: str, role: str) -> List[str]:
        if role not in ROLES:
            raise ValidationFailed(f"Unknown role: {role}")
        if role not in self.list_roles(user_id):
            self.store.insert("user_roles", {"user_id": user_id, "role": role})
            logger.info("Granted role %s to %s", role, user_id)
        if role == "helper":
            self.store.update("profiles", [eq("user_id", user_id)], {"is_helper": True})
        return self.list_roles(user_id)

    def revoke_role(self, user_id: str, role: str) -> List[str]:
        if role not in ROLES:
            raise ValidationFailed(f"Unknown role: {role}")
        removed = self.store.delete("user_roles", [eq("user_id", user_id), eq("role", role)])
        if removed:
            logger.info("Revoked role %s from %s", role, user_id)
        if role == "helper":
            self.store.update("profiles", [eq("user_id", user_id)], {"is_helper": False, "is_available": False})
        return self.list_roles(user_id)
