from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List

from ..domain.errors import InvalidTransition

# Chat session lifecycle. Terminal statuses have no outgoing edges.
SESSION_TRANSITIONS: Dict[str, List[str]] = {
    "pending": ["active", "cancelled"],
    "active": ["completed"],
    "completed": [],
    "cancelled": [],
}

# Position of each status along the lifecycle; used to discard stale snapshots.
STATUS_RANK: Dict[str, int] = {
    "pending": 0,
    "active": 1,
    "completed": 2,
    "cancelled": 2,
}


def is_valid_transition(current: str, target: str) -> bool:
    return target in SESSION_TRANSITIONS.get(current, [])


def is_terminal(status: str) -> bool:
    return status in SESSION_TRANSITIONS and not SESSION_TRANSITIONS[status]


def ensure_transition(current: str, target: str) -> None:
    if not is_valid_transition(current, target):
        raise InvalidTransition(current, target)


def status_rank(status: str) -> int:
    return STATUS_RANK.get(status, -1)


def duration_minutes(started_at: datetime, ended_at: datetime) -> int:
    """Whole minutes between start and end, rounded down."""
    if ended_at < started_at:
        raise ValueError("ended_at precedes started_at")
    return (ended_at - started_at) // timedelta(minutes=1)


def session_amount(hourly_rate: int, minutes: int) -> int:
    """Amount owed in minor units for ``minutes`` at ``hourly_rate``, rounded down."""
    return (hourly_rate * minutes) // 60
