from __future__ import annotations

from typing import List
from fastapi import APIRouter, Depends

from ...domain.errors import DOMAIN_ERRORS
from ...domain.models import (
    AdminPayment,
    AdminSession,
    AdminStats,
    ChatSession,
    RoleChange,
    StatusChange,
    UserWithRoles,
)
from ...security.auth import User
from ...security.rbac import require_admin
from ...services.admin import AdminService
from ..errors import http_error

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/stats", response_model=AdminStats)
def stats(user: User = Depends(require_admin)) -> AdminStats:
    return AdminService().stats()


@router.get("/users", response_model=List[UserWithRoles])
def users(user: User = Depends(require_admin)) -> List[UserWithRoles]:
    return AdminService().users()


@router.post("/users/{user_id}/roles")
def update_role(user_id: str, req: RoleChange, user: User = Depends(require_admin)) -> dict:
    try:
        roles = AdminService().update_role(user_id, req.role, req.action)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)
    return {"user_id": user_id, "roles": roles}


@router.get("/sessions", response_model=List[AdminSession])
def sessions(user: User = Depends(require_admin)) -> List[AdminSession]:
    return AdminService().list_sessions()


@router.post("/sessions/{session_id}/status", response_model=ChatSession)
def set_session_status(session_id: str, req: StatusChange, user: User = Depends(require_admin)) -> ChatSession:
    try:
        return AdminService().set_session_status(session_id, req.status)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.get("/payments", response_model=List[AdminPayment])
def payments(user: User = Depends(require_admin)) -> List[AdminPayment]:
    return AdminService().payments()
