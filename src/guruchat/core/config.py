"""Environment-driven settings.

Env vars:
- GURUCHAT_ENV / ENVIRONMENT / ENV (default "development")
- GEMINI_API_KEY (falls back to a development key outside production)
- GURUCHAT_AI_BREAKER_THRESHOLD (default 2)
- GURUCHAT_AI_BREAKER_COOLDOWN (seconds, default 120)
- GURUCHAT_AI_TIMEOUT (seconds, default 20)
- GURUCHAT_ADMIN_EMAILS (comma separated; granted the admin role at sign-up)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEV_GEMINI_API_KEY = "dev-gemini-key-change-me"
REGENERATION_LIMIT = 3


def environment_name(env: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if env is None else env
    return (
        env.get("GURUCHAT_ENV")
        or env.get("ENVIRONMENT")
        or env.get("ENV")
        or "development"
    ).lower()


def is_production(env: Optional[Mapping[str, str]] = None) -> bool:
    return environment_name(env) in ("prod", "production")


def resolve_gemini_api_key(env: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if env is None else env
    key = (env.get("GEMINI_API_KEY") or "").strip()
    if key:
        return key
    if is_production(env):
        logger.warning("GEMINI_API_KEY is not set; AI replies will use the development key and fall back to templates")
    return DEV_GEMINI_API_KEY


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
        return value if value > 0 else default
    except ValueError:
        return default


@dataclass
class AISettings:
    breaker_threshold: int = 2
    breaker_cooldown: float = 120.0
    request_timeout: float = 20.0
    regeneration_limit: int = REGENERATION_LIMIT

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "AISettings":
        env = os.environ if env is None else env
        return AISettings(
            breaker_threshold=_env_int(env, "GURUCHAT_AI_BREAKER_THRESHOLD", 2),
            breaker_cooldown=_env_float(env, "GURUCHAT_AI_BREAKER_COOLDOWN", 120.0),
            request_timeout=_env_float(env, "GURUCHAT_AI_TIMEOUT", 20.0),
        )


def admin_emails(env: Optional[Mapping[str, str]] = None) -> set[str]:
    env = os.environ if env is None else env
    raw = env.get("GURUCHAT_ADMIN_EMAILS") or ""
    return {part.strip().lower() for part in raw.split(",") if part.strip()}
