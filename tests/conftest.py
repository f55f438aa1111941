import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


_PROVIDER_ENV = (
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "GEMINI_FALLBACK_MODELS",
    "OPENAI_API_KEY",
    "GURUCHAT_ENABLE_LOCAL_PROVIDER",
    "GURUCHAT_ADMIN_EMAILS",
    "GURUCHAT_RATE_LIMIT_DISABLED",
    "REDIS_URL",
)


@pytest.fixture(autouse=True)
def _fresh_state(monkeypatch):
    """Give every test empty in-memory stores and an offline LLM client."""
    from src.guruchat.infrastructure import realtime, tables
    from src.guruchat.security import auth, rate_limit
    from src.guruchat.services import ai_responder, auto_reply, compose
    from src.guruchat.services.marketplace import seed_default_categories

    for key in _PROVIDER_ENV:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("GURUCHAT_TABLE_STORE_IMPL", "memory")

    monkeypatch.setattr(realtime, "_notifier", None)
    monkeypatch.setattr(tables, "_store", None)
    monkeypatch.setattr(ai_responder, "_generator", None)
    monkeypatch.setattr(compose, "_manager", None)
    monkeypatch.setattr(auto_reply, "_activity", auto_reply.ActivityLog())
    monkeypatch.setattr(auth, "USERS", {})
    rate_limit.reset_rate_limits()

    def _offline_client(candidate, timeout=20.0):
        raise RuntimeError("network disabled in tests")

    monkeypatch.setattr(ai_responder, "build_llm_client", _offline_client)
    seed_default_categories()
    yield
    rate_limit.reset_rate_limits()
