"""Drafting client replies for professionals.

The generator renders a prompt from the professional's context, then asks
each model candidate from the ``ModelRouter`` in order until one returns a
non-empty reply. When every remote call fails, the circuit breaker is open,
or no provider is configured, a deterministic template for the response type
is returned instead, so callers always get text back.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from langchain_openai import ChatOpenAI
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..core.config import AISettings
from ..domain.ai_models import AIResponsePayload, AIResponseRequest, ProfessionalContext
from ..observability.metrics import record_generation
from .model_router import ModelCandidate, ModelRouter

logger = logging.getLogger(__name__)
LOG = logging.getLogger("guruchat.ai")


TONE_INSTRUCTIONS: Dict[str, str] = {
    "professional": "Use formal, respectful language with proper business etiquette",
    "friendly": "Use warm, approachable language while maintaining professionalism",
    "casual": "Use relaxed, conversational language that feels personal",
}

RESPONSE_TYPE_CONTEXT: Dict[str, str] = {
    "greeting": "This is the first response to a new client. Introduce yourself warmly and ask how you can help.",
    "consultation": (
        "The client is asking for advice or consultation. "
        "Provide helpful initial guidance and ask clarifying questions."
    ),
    "followup": (
        "This is a follow-up to previous conversation. "
        "Reference what was discussed and ask if they need clarification."
    ),
    "closing": "The conversation is ending. Thank them warmly and encourage future contact.",
}

FALLBACK_TEMPLATES: Dict[str, str] = {
    "greeting": (
        "Hello! I'm {name}, a {specialty} professional with {experience} of experience. "
        "How can I help you today?"
    ),
    "consultation": (
        "Thank you for reaching out about your {specialty} needs. I'd be happy to help you "
        "with personalized guidance. What specific questions do you have?"
    ),
    "followup": (
        "I hope my previous response was helpful. "
        "Is there anything specific you'd like me to clarify or expand on?"
    ),
    "closing": (
        "Thank you for the conversation. Feel free to reach out anytime if you need "
        "further assistance. Have a great day!"
    ),
}

GENERIC_FALLBACK = "Thank you for your message. I will respond shortly with personalized assistance."


def build_prompt(request: AIResponseRequest, custom_prompt: Optional[str] = None) -> str:
    ctx = request.professional_context
    rtype = request.response_type
    lines = [
        f"You are {ctx.name}, a {ctx.specialty} professional with {ctx.experience} of experience.",
        "",
        f"Generate a {rtype} response to this client message:",
        f'"{request.client_message}"',
        "",
        f"Context: {request.previous_context or 'This is a new conversation'}",
        "",
        "Requirements:",
        f"- {TONE_INSTRUCTIONS[ctx.tone]}",
        "- Professional and helpful",
        f"- Specific to {rtype} context",
        "- Under 80 words",
        "- Include a question to encourage engagement",
        f"- Reflect your expertise in {ctx.specialty}",
        "- Sound natural and human-written",
        "",
        f"Response type: {rtype}",
        "",
        RESPONSE_TYPE_CONTEXT.get(rtype, ""),
    ]
    if custom_prompt and custom_prompt.strip():
        lines.extend(["", f"Additional instructions from {ctx.name}: {custom_prompt.strip()}"])
    lines.extend(["", "Generate only the response text, no explanations or formatting."])
    return "\n".join(lines)


def template_reply(response_type: str, context: ProfessionalContext) -> str:
    template = FALLBACK_TEMPLATES.get(response_type) or FALLBACK_TEMPLATES["consultation"]
    return template.format(name=context.name, specialty=context.specialty, experience=context.experience)


class GenerationOutcome(str, Enum):
    GENERATED = "generated"
    FALLBACK_MODEL = "fallback_model"
    TEMPLATE = "template"
    ERROR = "error"


@dataclass
class GenerationResult:
    text: str
    outcome: GenerationOutcome
    provider: Optional[str] = None
    model: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome in (GenerationOutcome.GENERATED, GenerationOutcome.FALLBACK_MODEL)

    def to_payload(self) -> AIResponsePayload:
        if self.success:
            return AIResponsePayload(
                success=True,
                outcome=self.outcome.value,
                model=self.model or "unknown",
                response=self.text,
                usage=self.usage,
            )
        return AIResponsePayload(
            success=False,
            outcome=self.outcome.value,
            model="fallback",
            fallback=self.text,
            error="; ".join(self.errors) or None,
        )


class CircuitBreaker:
    """Counts consecutive generations where every candidate failed.

    Once ``threshold`` is reached, remote calls are skipped until ``cooldown``
    seconds have passed.
    """

    def __init__(self, threshold: int = 2, cooldown: float = 120.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.threshold = threshold
        self.cooldown = cooldown
        self._clock = clock
        self._lock = Lock()
        self.fails = 0
        self.opened_at: Optional[float] = None

    def is_open(self) -> bool:
        with self._lock:
            if self.opened_at is None:
                return False
            if self._clock() - self.opened_at < self.cooldown:
                return True
            self.fails = 0
            self.opened_at = None
            return False

    def record_failure(self) -> None:
        with self._lock:
            self.fails += 1
            if self.fails >= self.threshold and self.opened_at is None:
                self.opened_at = self._clock()
                LOG.warning("ai_breaker_opened", extra={"fails": self.fails, "cooldown_s": self.cooldown})

    def record_success(self) -> None:
        with self._lock:
            if self.fails or self.opened_at is not None:
                LOG.info("ai_breaker_closed")
            self.fails = 0
            self.opened_at = None


def _build_session() -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=2,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["POST", "GET"]),
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class LocalLLMClient:
    """Minimal client for an Ollama-compatible host (``/api/generate``)."""

    def __init__(self, base_url: str, model: str, timeout: float = 30.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._timeout = (3, timeout)
        self._session = _build_session()

    def invoke(self, messages: List[Dict[str, str]]) -> str:
        LOG.debug("local_llm_invoke", extra={"model": self.model, "base_url": self.base_url})
        resp = self._session.post(
            f"{self.base_url}/api/generate",
            json={"model": self.model, "prompt": self._messages_to_prompt(messages), "stream": False},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        return data.get("response") or data.get("text") or ""

    @staticmethod
    def _messages_to_prompt(messages: List[Dict[str, str]]) -> str:
        parts: List[str] = []
        for msg in messages:
            role = (msg.get("role") or "user").strip().upper()
            parts.append(f"{role}: {msg.get('content') or ''}")
        parts.append("ASSISTANT:")
        return "\n".join(parts)


def build_llm_client(candidate: ModelCandidate, timeout: float = 20.0) -> Any:
    """Instantiate the SDK client for one candidate."""
    if candidate.provider == "local":
        return LocalLLMClient(base_url=candidate.base_url, model=candidate.model, timeout=timeout)
    logger.debug(
        "Using remote LLM provider name=%s model=%s base_url=%s",
        candidate.provider,
        candidate.model,
        candidate.base_url,
    )
    return ChatOpenAI(
        api_key=candidate.api_key,
        base_url=candidate.base_url,
        model=candidate.model,
        temperature=0.7,
        timeout=timeout,
        max_retries=0,
    )


def _reply_text(res: Any) -> str:
    text = res.content if hasattr(res, "content") else res
    return str(text or "").strip()


def _usage(res: Any) -> Optional[Dict[str, Any]]:
    usage = getattr(res, "usage_metadata", None)
    return dict(usage) if usage else None


class AIResponseGenerator:
    def __init__(
        self,
        router: Optional[ModelRouter] = None,
        settings: Optional[AISettings] = None,
        breaker: Optional[CircuitBreaker] = None,
        client_factory: Optional[Callable[[ModelCandidate, float], Any]] = None,
    ) -> None:
        self.router = router or ModelRouter()
        self.settings = settings or AISettings.from_env()
        self.breaker = breaker or CircuitBreaker(self.settings.breaker_threshold, self.settings.breaker_cooldown)
        self._client_factory = client_factory

    def generate(self, request: AIResponseRequest, custom_prompt: Optional[str] = None) -> GenerationResult:
        """Return a reply for ``request``; never raises and never returns empty text."""
        try:
            result = self._generate(request, custom_prompt)
        except Exception as exc:
            LOG.exception("ai_generation_error", extra={"err": str(exc)})
            result = GenerationResult(text=GENERIC_FALLBACK, outcome=GenerationOutcome.ERROR, errors=[str(exc)])
        record_generation(result.outcome.value)
        LOG.info(
            "ai_generation_finished",
            extra={"outcome": result.outcome.value, "provider": result.provider, "model": result.model},
        )
        return result

    def _generate(self, request: AIResponseRequest, custom_prompt: Optional[str]) -> GenerationResult:
        messages = [{"role": "user", "content": build_prompt(request, custom_prompt)}]
        errors: List[str] = []
        candidates = self.router.candidates("auto_reply")
        if not candidates:
            errors.append("no model provider configured")
        elif self.breaker.is_open():
            LOG.info("ai_skipped_due_to_breaker", extra={"cooldown_s": self.breaker.cooldown})
            errors.append("circuit open")
            candidates = []

        for index, candidate in enumerate(candidates):
            text, usage, error = self._attempt(candidate, messages)
            if text:
                self.breaker.record_success()
                outcome = GenerationOutcome.GENERATED if index == 0 else GenerationOutcome.FALLBACK_MODEL
                return GenerationResult(
                    text=text,
                    outcome=outcome,
                    provider=candidate.provider,
                    model=candidate.model,
                    usage=usage,
                    errors=errors,
                )
            errors.append(f"{candidate.provider}/{candidate.model}: {error}")

        if candidates:
            self.breaker.record_failure()
        LOG.info("ai_fallback_template", extra={"response_type": request.response_type, "errors": errors})
        return GenerationResult(
            text=template_reply(request.response_type, request.professional_context),
            outcome=GenerationOutcome.TEMPLATE,
            errors=errors,
        )

    def _attempt(
        self, candidate: ModelCandidate, messages: List[Dict[str, str]]
    ) -> Tuple[str, Optional[Dict[str, Any]], Optional[str]]:
        factory = self._client_factory or build_llm_client
        try:
            res = factory(candidate, self.settings.request_timeout).invoke(messages)
        except Exception as exc:
            LOG.warning(
                "ai_model_failed",
                extra={"provider": candidate.provider, "model": candidate.model, "err": str(exc)},
            )
            return "", None, str(exc) or exc.__class__.__name__
        text = _reply_text(res)
        if not text:
            return "", None, "empty response"
        return text, _usage(res), None


_generator: Optional[AIResponseGenerator] = None


def get_response_generator() -> AIResponseGenerator:
    global _generator
    if _generator is None:
        _generator = AIResponseGenerator()
    return _generator
