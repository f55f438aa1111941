"""Routing helpers for choosing which generative models draft a reply.

The router does not couple directly to concrete SDK clients; it returns an
ordered list of model candidates that the generator tries one after another.
This keeps the fallback policy unit-testable without any network access.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set

from ..core.config import resolve_gemini_api_key


@dataclass(frozen=True)
class ModelCandidate:
    """One (provider, model) pair the generator may call."""

    provider: str
    model: str
    base_url: str
    api_key: Optional[str] = None


def unique_models(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for value in values:
        if not value:
            continue
        trimmed = value.strip()
        if not trimmed or trimmed in seen:
            continue
        seen.add(trimmed)
        ordered.append(trimmed)
    return ordered


class ModelRouter:
    """Policy-based ordering of providers and their models."""

    PROVIDER_CONFIG: Dict[str, Dict[str, object]] = {
        "gemini": {
            "api_key_env": "GEMINI_API_KEY",
            "base_url_env": "GEMINI_BASE_URL",
            "model_env": "GEMINI_MODEL",
            "fallbacks_env": "GEMINI_FALLBACK_MODELS",
            "default_model": "gemini-2.5-flash",
            "default_fallbacks": ("gemini-2.0-flash", "gemini-1.5-flash"),
            "default_base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
        },
        "openai": {
            "api_key_env": "OPENAI_API_KEY",
            "base_url_env": "OPENAI_BASE_URL",
            "model_env": "OPENAI_MODEL",
            "fallbacks_env": "OPENAI_FALLBACK_MODELS",
            "default_model": "gpt-4o-mini",
            "default_fallbacks": (),
            "default_base_url": "https://api.openai.com/v1",
        },
        "local": {
            "api_key_env": None,
            "base_url_env": "LOCAL_BASE_URL",
            "model_env": "LOCAL_MODEL",
            "fallbacks_env": "LOCAL_MODEL_FALLBACKS",
            "default_model": "llama3.2:latest",
            "default_fallbacks": (),
            "default_base_url": "http://127.0.0.1:11434",
            "requires_api_key": False,
        },
    }

    ROUTING_POLICY: Dict[str, tuple[str, ...]] = {
        # Drafting replies favours the cheap hosted model family first.
        "auto_reply": ("gemini", "openai", "local"),
    }

    def __init__(
        self,
        env: Optional[Mapping[str, str]] = None,
        allowed_providers: Optional[Iterable[str]] = None,
    ) -> None:
        self._env = os.environ if env is None else env
        self._allowed: Optional[Set[str]] = set(allowed_providers) if allowed_providers else None

    def _api_key(self, provider: str) -> Optional[str]:
        if provider == "gemini":
            return resolve_gemini_api_key(self._env)
        env_name = self.PROVIDER_CONFIG[provider].get("api_key_env")
        if not env_name:
            return None
        return (self._env.get(str(env_name)) or "").strip() or None

    def provider_available(self, provider: str) -> bool:
        cfg = self.PROVIDER_CONFIG.get(provider)
        if not cfg:
            return False
        if self._allowed is not None and provider not in self._allowed:
            return False
        if provider == "local":
            return (self._env.get("GURUCHAT_ENABLE_LOCAL_PROVIDER") or "").strip() == "1"
        if not cfg.get("requires_api_key", True):
            return True
        return bool(self._api_key(provider))

    def models_for(self, provider: str) -> List[str]:
        cfg = self.PROVIDER_CONFIG[provider]
        values: List[str] = []
        primary = self._env.get(str(cfg.get("model_env") or ""), "")
        values.append(primary or str(cfg["default_model"]))
        fallbacks_raw = self._env.get(str(cfg.get("fallbacks_env") or ""), "")
        if fallbacks_raw:
            values.extend(fallbacks_raw.split(","))
        else:
            values.extend(cfg.get("default_fallbacks") or ())
        return unique_models(values)

    def _base_url(self, provider: str) -> str:
        cfg = self.PROVIDER_CONFIG[provider]
        return self._env.get(str(cfg.get("base_url_env") or ""), "") or str(cfg["default_base_url"])

    def candidates(self, purpose: str = "auto_reply") -> List[ModelCandidate]:
        """Every available model in priority order; empty when nothing is configured."""
        priority = self.ROUTING_POLICY.get(purpose, self.ROUTING_POLICY["auto_reply"])
        out: List[ModelCandidate] = []
        for provider in priority:
            if not self.provider_available(provider):
                continue
            base_url = self._base_url(provider)
            api_key = self._api_key(provider)
            for model in self.models_for(provider):
                out.append(ModelCandidate(provider=provider, model=model, base_url=base_url, api_key=api_key))
        return out
