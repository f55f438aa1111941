from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


Tone = Literal["professional", "friendly", "casual"]
ResponseType = Literal["greeting", "consultation", "followup", "closing"]
Outcome = Literal["generated", "fallback_model", "template", "error"]

RESPONSE_TYPES: tuple[str, ...] = ("greeting", "consultation", "followup", "closing")


class ProfessionalContext(BaseModel):
    name: str = Field(min_length=1)
    specialty: str = Field(min_length=1)
    experience: str = Field(min_length=1)
    tone: Tone = "professional"


class AIResponseRequest(BaseModel):
    """Body of the generation endpoint; camelCase aliases match the web client."""

    model_config = ConfigDict(populate_by_name=True)

    client_message: str = Field(alias="clientMessage", min_length=1)
    professional_context: ProfessionalContext = Field(alias="professionalContext")
    response_type: ResponseType = Field(default="consultation", alias="responseType")
    previous_context: Optional[str] = Field(default=None, alias="previousContext")


class AIResponsePayload(BaseModel):
    success: bool
    outcome: Outcome
    model: str
    response: Optional[str] = None
    fallback: Optional[str] = None
    error: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None


class CustomPrompts(BaseModel):
    greeting: str = ""
    consultation: str = ""
    followup: str = ""
    closing: str = ""


class AutoReplySettings(BaseModel):
    enabled: bool = False
    response_delay: int = Field(default=5, ge=0, description="Minutes")
    tone: Tone = "professional"
    auto_greeting: bool = True
    auto_follow_up: bool = True
    max_daily_responses: int = Field(default=50, ge=1)
    custom_prompts: CustomPrompts = Field(default_factory=CustomPrompts)


class ComposeCreate(BaseModel):
    request: AIResponseRequest
    session_id: Optional[str] = None


class ComposeRegenerate(BaseModel):
    response_type: Optional[ResponseType] = None


class ComposeSend(BaseModel):
    content: Optional[str] = None


class ComposeView(BaseModel):
    compose_id: str
    professional_id: str
    session_id: Optional[str] = None
    response_type: ResponseType
    draft: str
    outcome: Optional[Outcome] = None
    model: Optional[str] = None
    generation_count: int
    remaining_generations: int


class ComposeAttemptView(BaseModel):
    compose: ComposeView
    accepted: bool
    notice: Optional[str] = None


class ComposeSendResult(BaseModel):
    compose: ComposeView
    content: str
    message_id: Optional[str] = None


class ActivityEntry(BaseModel):
    response_type: ResponseType
    outcome: Outcome
    client_message: str
    created_at: datetime


class DashboardStats(BaseModel):
    total_responses: int
    today_responses: int
    generated: int
    fallback_model: int
    template: int
    error: int
    remaining_today: int
    recent_activity: List[ActivityEntry]
