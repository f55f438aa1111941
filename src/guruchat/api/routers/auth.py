from __future__ import annotations

from fastapi import APIRouter, HTTPException, status, Depends, Request

from ...core.config import admin_emails
from ...security.auth import (
    SignInRequest,
    SignUpRequest,
    TokenResponse,
    User,
    authenticate,
    get_current_user,
    issue_token,
    register_user,
)
from ...security.rate_limit import AUTH_SIGNIN, AUTH_SIGNUP, RateLimitExceeded, RateLimitRule, rate_limit_action
from ...services.profiles import ProfileService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(req: SignUpRequest, request: Request) -> TokenResponse:
    _limit(AUTH_SIGNUP, _rate_limit_identifier(request, req.email))
    try:
        user_id = register_user(req.email, req.password, req.display_name)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    extra_roles = ("admin",) if req.email.lower() in admin_emails() else ()
    profiles = ProfileService()
    profiles.create_profile(
        user_id,
        display_name=req.display_name,
        email=req.email.lower(),
        is_helper=req.is_helper,
        roles=extra_roles,
    )
    user = User(id=user_id, email=req.email, name=req.display_name, roles=profiles.list_roles(user_id))
    return issue_token(user)


@router.post("/signin", response_model=TokenResponse)
def signin(req: SignInRequest, request: Request) -> TokenResponse:
    _limit(AUTH_SIGNIN, _rate_limit_identifier(request, req.email))
    user_id, name = authenticate(req.email, req.password)
    user = User(id=user_id, email=req.email, name=name, roles=ProfileService().list_roles(user_id))
    return issue_token(user)


def _limit(rule: RateLimitRule, identifier: str) -> None:
    try:
        rate_limit_action(rule, identifier)
    except RateLimitExceeded as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=exc.reason,
            headers={"Retry-After": str(exc.retry_after_seconds)},
        ) from exc


def _rate_limit_identifier(request: Request, email: str) -> str:
    host = request.client.host if request.client else "unknown"
    return f"{host}:{email.lower()}"


@router.get("/me", response_model=User)
def me(user: User = Depends(get_current_user)) -> User:
    return user
