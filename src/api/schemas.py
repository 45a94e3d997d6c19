"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.booking.models import AvailabilityWindow


class ChatRequest(BaseModel):
    """Incoming chat message.  Length limits are enforced by ``ChatService``."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field("", description="The user's message")
    session_id: str = Field(
        "",
        alias="sessionId",
        max_length=100,
        description="Unique session identifier for conversation continuity",
    )
    user_id: str | None = Field(None, alias="userId")
    metadata: dict[str, Any] = Field(default_factory=dict)
    use_knowledge_base: bool = Field(True, alias="useKnowledgeBase")


class BookingUpdateRequest(BaseModel):
    booking_id: str = Field(..., min_length=1)
    action: str = Field(..., description="cancel or reschedule")
    new_date: str | None = None
    new_time: str | None = None
    cancellation_reason: str | None = None


class AgentUpsertRequest(BaseModel):
    """Editable agent settings."""

    name: str = Field(..., min_length=1, max_length=200)
    purpose: str = "general"
    tone: str = "friendly"
    persona: str | None = None
    system_prompt: str | None = None
    model: str | None = None
    temperature: float | None = Field(None, ge=0.0, le=1.0)
    max_tokens: int | None = Field(None, gt=0)
    is_active: bool = True


class CalendarUpsertRequest(BaseModel):
    """Editable calendar settings."""

    is_active: bool = True
    integration_type: str | None = None
    calendly_url: str | None = None
    booking_duration: int = Field(30, gt=0)
    timezone: str = "UTC"
    buffer_time: int = Field(0, ge=0)
    send_confirmations: bool = False
    availability_rules: dict[str, list[AvailabilityWindow]] = Field(default_factory=dict)


class KnowledgeDocumentRequest(BaseModel):
    content: str = Field(..., min_length=1)
    source_name: str = "Uploaded Document"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "agent-booking"
