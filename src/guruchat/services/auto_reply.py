"""Per-professional auto-reply settings and generation activity.

Settings live in the ``auto_reply_settings`` table keyed by professional id.
Activity (what the dashboard shows and what the daily cap counts) is kept in
memory only.
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from threading import RLock
from typing import Deque, Dict, Optional

from ..core.clock import Clock, isoformat_utc, utc_now
from ..domain.ai_models import ActivityEntry, AIResponseRequest, AutoReplySettings, DashboardStats
from ..infrastructure.tables import TableStore, eq, get_table_store
from ..security.rate_limit import RateLimitExceeded, seconds_until_utc_midnight

logger = logging.getLogger(__name__)

RECENT_ACTIVITY = 10
EXCERPT_CHARS = 120
# Per-day generation counts older than this are dropped.
ACTIVITY_DAYS_KEPT = 7


class AutoReplySettingsStore:
    def __init__(self, store: Optional[TableStore] = None) -> None:
        self._store = store

    @property
    def store(self) -> TableStore:
        return self._store or get_table_store()

    def get(self, professional_id: str) -> AutoReplySettings:
        row = self.store.get("auto_reply_settings", professional_id)
        if row is None:
            return AutoReplySettings()
        return AutoReplySettings.model_validate(row)

    def save(self, professional_id: str, settings: AutoReplySettings, clock: Clock = utc_now) -> AutoReplySettings:
        values = {**settings.model_dump(), "updated_at": isoformat_utc(clock())}
        updated = self.store.update("auto_reply_settings", [eq("professional_id", professional_id)], values)
        if not updated:
            self.store.insert("auto_reply_settings", {"professional_id": professional_id, **values})
        logger.info("Saved auto-reply settings for %s enabled=%s", professional_id, settings.enabled)
        return settings

    def custom_prompt(self, professional_id: str, response_type: str) -> Optional[str]:
        prompts = self.get(professional_id).custom_prompts
        return getattr(prompts, response_type, "") or None


@dataclass
class _Activity:
    total: int = 0
    by_outcome: Counter = field(default_factory=Counter)
    by_day: Counter = field(default_factory=Counter)
    recent: Deque[ActivityEntry] = field(default_factory=lambda: deque(maxlen=RECENT_ACTIVITY))


class ActivityLog:
    def __init__(self) -> None:
        self._entries: Dict[str, _Activity] = {}
        self._lock = RLock()

    def record(
        self,
        professional_id: str,
        request: AIResponseRequest,
        outcome: str,
        at: Optional[datetime] = None,
    ) -> None:
        at = at or utc_now()
        excerpt = request.client_message.strip()
        if len(excerpt) > EXCERPT_CHARS:
            excerpt = excerpt[: EXCERPT_CHARS - 1] + "…"
        entry = ActivityEntry(
            response_type=request.response_type,
            outcome=outcome,
            client_message=excerpt,
            created_at=at,
        )
        with self._lock:
            activity = self._entries.setdefault(professional_id, _Activity())
            activity.total += 1
            activity.by_outcome[outcome] += 1
            activity.by_day[at.date()] += 1
            oldest = at.date() - timedelta(days=ACTIVITY_DAYS_KEPT)
            for day in [d for d in activity.by_day if d < oldest]:
                del activity.by_day[day]
            activity.recent.append(entry)

    def count_on(self, professional_id: str, day: date) -> int:
        with self._lock:
            activity = self._entries.get(professional_id)
            return activity.by_day[day] if activity else 0

    def check_daily_cap(self, professional_id: str, limit: int, now: Optional[datetime] = None) -> None:
        """Raise ``RateLimitExceeded`` once ``limit`` generations happened today (UTC)."""
        now = now or utc_now()
        if self.count_on(professional_id, now.date()) >= limit:
            raise RateLimitExceeded(seconds_until_utc_midnight(now), "Daily auto-reply limit reached")

    def dashboard(self, professional_id: str, limit: int, now: Optional[datetime] = None) -> DashboardStats:
        now = now or utc_now()
        with self._lock:
            activity = self._entries.get(professional_id) or _Activity()
            today = activity.by_day[now.date()]
            return DashboardStats(
                total_responses=activity.total,
                today_responses=today,
                generated=activity.by_outcome["generated"],
                fallback_model=activity.by_outcome["fallback_model"],
                template=activity.by_outcome["template"],
                error=activity.by_outcome["error"],
                remaining_today=max(limit - today, 0),
                recent_activity=list(reversed(activity.recent)),
            )


_activity = ActivityLog()


def get_activity_log() -> ActivityLog:
    return _activity
