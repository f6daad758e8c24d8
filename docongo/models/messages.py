"""API request and response models."""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from docongo.models.session import Message, Prescription
from docongo.models.stages import Stage


class ChatRequest(BaseModel):
    """Request to send a message in a conversation."""

    session_id: str = Field(..., description="Caller-supplied session ID")
    message: str = Field(..., max_length=4000, description="User message")


class SessionRequest(BaseModel):
    """Request naming a session only (reset)."""

    session_id: str = Field(..., description="Session ID")


class RenameRequest(BaseModel):
    title: str = Field(..., max_length=200)


class ChatMetadata(BaseModel):
    """Stage and extraction metadata returned with every reply."""

    stage: str
    current_stage: str
    next_stage: bool = False
    detected_symptoms: List[str] = Field(default_factory=list)
    confidence_level: float = Field(0.5, ge=0.0, le=1.0)
    suggested_followup: str = ""
    output_kind: str = "structured"  # structured | repaired | fallback | emergency | error
    error: Optional[str] = None  # model_transport | internal


class ChatResponse(BaseModel):
    message: str
    metadata: ChatMetadata


class ResetResponse(BaseModel):
    success: bool = True
    message: str = "Conversation has been reset."


class StatusResponse(BaseModel):
    exists: bool
    stage: Optional[Stage] = None
    messages_count: Optional[int] = None
    detected_symptoms: List[str] = Field(default_factory=list)
    last_updated: Optional[datetime] = None
    message: Optional[str] = None


class PrescriptionResult(BaseModel):
    """Prescription plus whether it came from the session cache."""

    cached: bool
    prescription: Prescription


class SessionSummary(BaseModel):
    """Lightweight summary of a conversation for the history list."""

    session_id: str
    title: Optional[str] = None
    stage: Stage
    created_at: datetime
    updated_at: datetime
    message_count: int
    has_prescription: bool = False


class UserSessionsResponse(BaseModel):
    """Paginated list of the caller's conversations."""

    total: int
    limit: int
    offset: int
    sessions: List[SessionSummary]


class SessionDetailsResponse(BaseModel):
    """Full conversation details."""

    session_id: str
    title: Optional[str] = None
    stage: Stage
    created_at: datetime
    updated_at: datetime
    messages: List[Message]
    detected_symptoms: List[str]
    prescription: Optional[Prescription] = None
