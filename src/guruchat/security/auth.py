"""Authentication utilities: JWT handling and the dev credential store.

The production deployment delegates sign-up and sign-in to the hosted auth
service, which issues HS256 JWTs whose ``sub`` is the user id. This module
verifies those tokens and, for development and tests, keeps an in-memory
credential store that issues the same kind of token.

Env vars (for production readiness):
- JWT_SECRET (required in prod; default for dev)
- JWT_EXPIRES_MIN (default 60)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Dict, List, Optional

import hashlib
import hmac
import logging
import os
import secrets
import uuid

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr, Field, model_validator


logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)

_PBKDF2_ROUNDS = 120_000


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val


@dataclass
class JwtConfig:
    secret: str
    algorithm: str = "HS256"
    expires_min: int = 60

    @staticmethod
    def from_env() -> "JwtConfig":
        secret = _get_env("JWT_SECRET", "dev-secret-change-me")
        expires = int(os.getenv("JWT_EXPIRES_MIN", "60"))
        return JwtConfig(secret=secret, expires_min=expires)


class User(BaseModel):
    id: str
    email: EmailStr
    name: str
    roles: List[str] = Field(default_factory=list)


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    confirm_password: str
    display_name: str = Field(min_length=1)
    is_helper: bool = False

    @model_validator(mode="after")
    def passwords_match(self) -> "SignUpRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class SignInRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: User


@dataclass
class _Credential:
    user_id: str
    name: str
    salt: str
    password_hash: str


# In-memory dev credentials (email -> credential)
USERS: Dict[str, _Credential] = {}
_USERS_LOCK = RLock()


def _hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), _PBKDF2_ROUNDS)
    return digest.hex()


def register_user(email: str, password: str, name: str) -> str:
    """Create dev credentials and return the new user id."""
    email_l = email.lower()
    with _USERS_LOCK:
        if email_l in USERS:
            raise ValueError("User already exists")
        salt = secrets.token_hex(16)
        cred = _Credential(
            user_id=uuid.uuid4().hex,
            name=name,
            salt=salt,
            password_hash=_hash_password(password, salt),
        )
        USERS[email_l] = cred
    logger.info("Registered user %s", email_l)
    return cred.user_id


def authenticate(email: str, password: str) -> tuple[str, str]:
    """Return ``(user_id, name)`` for valid credentials, else raise 401."""
    cred = USERS.get(email.lower())
    if cred is None or not hmac.compare_digest(cred.password_hash, _hash_password(password, cred.salt)):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    return cred.user_id, cred.name


def create_access_token(user: User, cfg: Optional[JwtConfig] = None) -> str:
    cfg = cfg or JwtConfig.from_env()
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=cfg.expires_min)
    payload = {
        "sub": user.id,
        "email": user.email,
        "name": user.name,
        "roles": user.roles,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, cfg.secret, algorithm=cfg.algorithm)


def decode_token(token: str, cfg: Optional[JwtConfig] = None) -> User:
    cfg = cfg or JwtConfig.from_env()
    try:
        data = jwt.decode(token, cfg.secret, algorithms=[cfg.algorithm])
        return User(
            id=data["sub"],
            email=data["email"],
            name=data.get("name", ""),
            roles=list(data.get("roles", [])),
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def issue_token(user: User, cfg: Optional[JwtConfig] = None) -> TokenResponse:
    cfg = cfg or JwtConfig.from_env()
    return TokenResponse(
        access_token=create_access_token(user, cfg),
        expires_in=cfg.expires_min * 60,
        user=user,
    )


def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> User:
    """Resolve the current user from a bearer token."""
    if creds is None or not creds.scheme or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    return decode_token(creds.credentials)
