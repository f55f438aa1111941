"""In-memory fixed-window rate limiting.

Each ``RateLimitRule`` names an action and where its limit and window come
from in the environment. Counters are kept per ``(rule, identifier)`` in this
process only. ``GURUCHAT_RATE_LIMIT_DISABLED`` switches every rule off.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Dict, Tuple


class RateLimitExceeded(Exception):
    def __init__(self, retry_after_seconds: int, reason: str = "Rate limit exceeded") -> None:
        super().__init__(reason)
        self.retry_after_seconds = retry_after_seconds
        self.reason = reason


@dataclass(frozen=True)
class RateLimitRule:
    name: str
    limit_env: str
    window_env: str
    default_limit: int
    default_window_seconds: int
    reason: str = "Rate limit exceeded"

    def limits(self) -> Tuple[int, int]:
        return (
            _env_int(self.limit_env, self.default_limit),
            _env_int(self.window_env, self.default_window_seconds),
        )


AUTH_SIGNUP = RateLimitRule(
    "auth_signup",
    "GURUCHAT_AUTH_RATE_LIMIT",
    "GURUCHAT_AUTH_RATE_WINDOW_SECONDS",
    default_limit=10,
    default_window_seconds=900,
    reason="Too many sign-in attempts. Please try again later.",
)
AUTH_SIGNIN = RateLimitRule(
    "auth_signin",
    AUTH_SIGNUP.limit_env,
    AUTH_SIGNUP.window_env,
    default_limit=AUTH_SIGNUP.default_limit,
    default_window_seconds=AUTH_SIGNUP.default_window_seconds,
    reason=AUTH_SIGNUP.reason,
)
AI_GENERATE = RateLimitRule(
    "ai_generate",
    "GURUCHAT_AI_RATE_LIMIT",
    "GURUCHAT_AI_RATE_WINDOW_SECONDS",
    default_limit=30,
    default_window_seconds=60,
    reason="Too many AI requests. Please slow down.",
)


@dataclass
class _Window:
    count: int
    ends_at: datetime


_WINDOWS: Dict[Tuple[str, str], _Window] = {}
_WINDOWS_LOCK = Lock()
# Expired windows are swept once the table grows past this many keys.
_PRUNE_THRESHOLD = 1024


def rate_limit_action(rule: RateLimitRule, identifier: str, now: datetime | None = None) -> None:
    """Count one ``rule`` action for ``identifier``.

    Raises:
        RateLimitExceeded once the window's limit is used up; its
        ``retry_after_seconds`` is the time left in the window.
    """
    if _rate_limiting_disabled():
        return
    limit, window_seconds = rule.limits()
    now = now or datetime.now(timezone.utc)
    key = (rule.name, identifier)
    with _WINDOWS_LOCK:
        if len(_WINDOWS) >= _PRUNE_THRESHOLD:
            _prune_expired(now)
        window = _WINDOWS.get(key)
        if window is None or window.ends_at <= now:
            _WINDOWS[key] = _Window(count=1, ends_at=now + timedelta(seconds=window_seconds))
            return
        if window.count >= limit:
            retry_after = int((window.ends_at - now).total_seconds())
            raise RateLimitExceeded(max(retry_after, 1), rule.reason)
        window.count += 1


def _prune_expired(now: datetime) -> None:
    for key in [k for k, w in _WINDOWS.items() if w.ends_at <= now]:
        del _WINDOWS[key]


def seconds_until_utc_midnight(now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    tomorrow = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return max(int((tomorrow - now).total_seconds()), 1)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name) if name else None
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _rate_limiting_disabled() -> bool:
    flag = os.getenv("GURUCHAT_RATE_LIMIT_DISABLED")
    return bool(flag and flag.lower() in {"1", "true", "yes", "on"})


def reset_rate_limits() -> None:
    with _WINDOWS_LOCK:
        _WINDOWS.clear()
