from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator


SessionStatus = Literal["pending", "active", "completed", "cancelled"]
RoleName = Literal["user", "helper", "admin"]


class Profile(BaseModel):
    user_id: str
    display_name: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    is_helper: bool = False
    is_available: bool = False
    hourly_rate: int = Field(default=0, ge=0, description="Minor currency units per hour")
    specialties: List[str] = Field(default_factory=list)
    experience: Optional[str] = None
    rating: float = 0.0
    total_sessions: int = 0
    created_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1)
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    is_available: Optional[bool] = None
    hourly_rate: Optional[int] = Field(default=None, ge=0)
    specialties: Optional[List[str]] = None
    experience: Optional[str] = None

    @field_validator("specialties")
    @classmethod
    def strip_specialties(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        return [s.strip() for s in value if s and s.strip()]


class ChatSessionCreate(BaseModel):
    helper_id: str


class ChatSession(BaseModel):
    id: str
    client_id: str
    helper_id: str
    status: SessionStatus
    hourly_rate: int
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_minutes: int = 0
    total_amount: Optional[int] = None
    created_at: datetime

    def participant_column(self, user_id: str) -> Optional[str]:
        if user_id == self.client_id:
            return "client_id"
        if user_id == self.helper_id:
            return "helper_id"
        return None

    def counterpart_of(self, user_id: str) -> str:
        return self.helper_id if user_id == self.client_id else self.client_id


class SessionSummary(BaseModel):
    session: ChatSession
    counterpart_id: str
    counterpart_name: Optional[str] = None


class MessageCreate(BaseModel):
    content: str = Field(min_length=1)
    message_type: str = "text"


class Message(BaseModel):
    id: str
    session_id: str
    sender_id: str
    content: str
    message_type: str = "text"
    created_at: datetime


class ChatSessionWithMessages(BaseModel):
    session: ChatSession
    messages: List[Message]


class RoleChange(BaseModel):
    role: RoleName
    action: Literal["add", "remove"]


class StatusChange(BaseModel):
    status: SessionStatus


class UserWithRoles(BaseModel):
    profile: Profile
    roles: List[str]


class AdminStats(BaseModel):
    total_users: int
    total_helpers: int
    total_sessions: int
    active_sessions: int
    pending_sessions: int
    total_revenue: int


class AdminSession(BaseModel):
    session: ChatSession
    client_name: Optional[str] = None
    helper_name: Optional[str] = None


class Payment(BaseModel):
    id: str
    client_id: str
    helper_id: Optional[str] = None
    amount: int
    status: str
    payment_type: str = "session"
    reference_id: Optional[str] = None
    created_at: datetime


class AdminPayment(BaseModel):
    payment: Payment
    client_name: Optional[str] = None
    helper_name: Optional[str] = None
