"""Role-based access helpers.

Route permissions come from the roles carried in the token. The admin panel
additionally asks the table store's ``has_role`` procedure so a revoked
admin loses access before their token expires.
"""

from __future__ import annotations
from enum import Enum
from typing import Callable, Set
from fastapi import Depends, HTTPException, status

from .auth import User, get_current_user
from ..infrastructure.tables import get_table_store


class Permission(str, Enum):
    SESSION_READ = "session:read"
    SESSION_WRITE = "session:write"
    SESSION_RESPOND = "session:respond"
    PRODUCT_PURCHASE = "product:purchase"
    PRODUCT_WRITE = "product:write"
    AI_COMPOSE = "ai:compose"
    ADMIN = "admin:*"


ROLE_PERMISSIONS = {
    "user": {Permission.SESSION_READ, Permission.SESSION_WRITE, Permission.PRODUCT_PURCHASE},
    "helper": {
        Permission.SESSION_READ,
        Permission.SESSION_WRITE,
        Permission.SESSION_RESPOND,
        Permission.PRODUCT_PURCHASE,
        Permission.PRODUCT_WRITE,
        Permission.AI_COMPOSE,
    },
    "admin": {Permission.ADMIN},
}


def _user_permissions(user: User) -> Set[Permission]:
    perms: Set[Permission] = set()
    for role in user.roles:
        perms |= ROLE_PERMISSIONS.get(role, set())
    return perms


def is_authorized(user: User, required: Permission) -> bool:
    perms = _user_permissions(user)
    if Permission.ADMIN in perms:
        return True
    return required in perms


def require_permission(required: Permission) -> Callable[[User], User]:
    """FastAPI dependency to enforce a single permission on a route."""

    def dependency(user: User = Depends(get_current_user)) -> User:
        if not is_authorized(user, required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user

    return dependency


def has_role(user_id: str, role: str) -> bool:
    return bool(get_table_store().rpc("has_role", user_id=user_id, role=role))


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not has_role(user.id, "admin"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
