"""Unit tests for `ModelRouter` candidate ordering."""

from __future__ import annotations

from typing import Dict

from src.guruchat.core.config import DEV_GEMINI_API_KEY
from src.guruchat.services.model_router import ModelRouter


def _router(values: Dict[str, str], **kwargs) -> ModelRouter:
    return ModelRouter(env=dict(values), **kwargs)


def test_gemini_primary_then_fallbacks_then_openai():
    router = _router({"GEMINI_API_KEY": "g", "OPENAI_API_KEY": "o"})
    pairs = [(c.provider, c.model) for c in router.candidates()]
    assert pairs == [
        ("gemini", "gemini-2.5-flash"),
        ("gemini", "gemini-2.0-flash"),
        ("gemini", "gemini-1.5-flash"),
        ("openai", "gpt-4o-mini"),
    ]
    assert router.candidates()[0].api_key == "g"


def test_env_overrides_models_and_dedupes():
    router = _router(
        {
            "GEMINI_API_KEY": "g",
            "GEMINI_MODEL": "gemini-pro",
            "GEMINI_FALLBACK_MODELS": "gemini-pro, gemini-lite ,,",
        }
    )
    assert router.models_for("gemini") == ["gemini-pro", "gemini-lite"]


def test_missing_gemini_key_uses_dev_key():
    router = _router({})
    first = router.candidates()[0]
    assert first.provider == "gemini"
    assert first.api_key == DEV_GEMINI_API_KEY
    assert not router.provider_available("openai")


def test_local_provider_requires_opt_in():
    assert not _router({}).provider_available("local")
    router = _router({"GURUCHAT_ENABLE_LOCAL_PROVIDER": "1", "LOCAL_MODEL": "mistral"}, allowed_providers=["local"])
    candidates = router.candidates()
    assert [(c.provider, c.model, c.api_key) for c in candidates] == [("local", "mistral", None)]
    assert candidates[0].base_url == "http://127.0.0.1:11434"


def test_no_available_provider_gives_no_candidates():
    router = _router({}, allowed_providers=["openai"])
    assert router.candidates() == []
