from datetime import UTC, date, datetime, timedelta

import pytest

from src.guruchat.domain.ai_models import AIResponseRequest
from src.guruchat.security.rate_limit import RateLimitExceeded
from src.guruchat.services.auto_reply import ActivityLog

from .utils import ai_request

NOON = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _request() -> AIResponseRequest:
    return AIResponseRequest.model_validate(ai_request())


def test_daily_cap_counts_today_only():
    log = ActivityLog()
    log.record("pro-1", _request(), "template", at=NOON - timedelta(days=1))
    log.record("pro-1", _request(), "generated", at=NOON)
    log.check_daily_cap("pro-1", 2, now=NOON)
    log.record("pro-1", _request(), "generated", at=NOON)
    with pytest.raises(RateLimitExceeded) as info:
        log.check_daily_cap("pro-1", 2, now=NOON)
    assert info.value.retry_after_seconds == 12 * 60 * 60
    log.check_daily_cap("pro-2", 2, now=NOON)


def test_old_days_are_dropped_but_totals_kept():
    log = ActivityLog()
    log.record("pro-1", _request(), "generated", at=NOON - timedelta(days=30))
    log.record("pro-1", _request(), "template", at=NOON)
    assert log.count_on("pro-1", date(2026, 1, 31)) == 0
    stats = log.dashboard("pro-1", 5, now=NOON)
    assert stats.total_responses == 2
    assert stats.today_responses == 1
    assert stats.remaining_today == 4
    assert stats.generated == 1 and stats.template == 1
