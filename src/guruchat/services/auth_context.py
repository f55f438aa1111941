from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from ..domain.models import Profile
from ..security.auth import User
from .profiles import ProfileService

logger = logging.getLogger(__name__)


@dataclass
class AuthContext:
    """The signed-in viewer, passed explicitly to whatever acts on their behalf.

    Controllers opened for this viewer register here so ``sign_out`` can tear
    down their subscriptions.
    """

    user: User
    profile: Optional[Profile] = None
    roles: List[str] = field(default_factory=list)
    _controllers: List[Any] = field(default_factory=list, repr=False)

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def is_helper(self) -> bool:
        return "helper" in self.roles or bool(self.profile and self.profile.is_helper)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def register(self, controller: Any) -> None:
        if controller not in self._controllers:
            self._controllers.append(controller)

    def unregister(self, controller: Any) -> None:
        if controller in self._controllers:
            self._controllers.remove(controller)

    @property
    def open_controllers(self) -> int:
        return len(self._controllers)

    def sign_out(self) -> None:
        for controller in list(self._controllers):
            controller.close()
        self._controllers.clear()
        logger.info("Signed out %s", self.user.id)


def sign_in(user: User, profiles: Optional[ProfileService] = None) -> AuthContext:
    profiles = profiles or ProfileService()
    return AuthContext(
        user=user,
        profile=profiles.find_profile(user.id),
        roles=profiles.list_roles(user.id),
    )
