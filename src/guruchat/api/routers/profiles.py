from __future__ import annotations

from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from ...domain.errors import DOMAIN_ERRORS
from ...domain.models import Profile, ProfileUpdate
from ...security.auth import User, get_current_user
from ...services.profiles import ProfileService
from ..errors import http_error

router = APIRouter(tags=["profiles"])


@router.get("/helpers", response_model=List[Profile])
def list_helpers(search: Optional[str] = Query(None, max_length=100)) -> List[Profile]:
    return ProfileService().list_helpers(search)


@router.get("/profiles/me", response_model=Profile)
def my_profile(user: User = Depends(get_current_user)) -> Profile:
    try:
        return ProfileService().get_profile(user.id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.patch("/profiles/me", response_model=Profile)
def update_my_profile(changes: ProfileUpdate, user: User = Depends(get_current_user)) -> Profile:
    try:
        return ProfileService().update_profile(user.id, changes)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.get("/profiles/{user_id}", response_model=Profile)
def get_profile(user_id: str, user: User = Depends(get_current_user)) -> Profile:
    try:
        return ProfileService().get_profile(user_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)
