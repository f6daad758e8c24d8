"""MongoDB schema for conversation sessions."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional, List
from datetime import datetime
from docongo.models.stages import Role, Stage, first_stage
import logging

logger = logging.getLogger(__name__)


def _as_text(item: Any) -> str:
    if isinstance(item, dict):
        return ", ".join(f"{key}: {value}" for key, value in item.items())
    return str(item)


class Message(BaseModel):
    """Individual transcript turn."""

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class Medicine(BaseModel):
    """One suggested medicine. Every field is optional since model output is partial."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    dosage: Optional[str] = None
    duration: Optional[str] = None
    purpose: Optional[str] = None
    prescription_required: Optional[bool] = None
    availability: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name", "dosage", "duration", "purpose", "availability", "notes", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return value if value is None or isinstance(value, str) else str(value)

    @field_validator("prescription_required", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> Optional[bool]:
        if value is None or isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("false", "no", "0", "otc") or "not" in text:
            return False
        if text in ("true", "yes", "1") or "required" in text:
            return True
        return None


class PrescriptionPayload(BaseModel):
    """Structured prescription content as produced by the model."""

    model_config = ConfigDict(extra="allow")

    description_of_issue: Optional[str] = None
    ai_analysis: Optional[str] = None
    medicines: List[Medicine] = Field(default_factory=list)
    general_tips: List[str] = Field(default_factory=list)
    diagnostic_tests: List[str] = Field(default_factory=list)
    emergency_signs: List[str] = Field(default_factory=list)
    follow_up: Optional[str] = None

    @field_validator("medicines", mode="before")
    @classmethod
    def _coerce_medicines(cls, value: Any) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, (str, dict)):
            value = [value]
        if not isinstance(value, list):
            logger.warning(f"Dropping unusable medicines value: {value!r}")
            return []

        medicines = []
        for item in value:
            if isinstance(item, str):
                medicines.append({"name": item})
            elif isinstance(item, dict):
                medicines.append(item)
            else:
                logger.warning(f"Dropping unusable medicine entry: {item!r}")
        return medicines

    @field_validator("general_tips", "diagnostic_tests", "emergency_signs", mode="before")
    @classmethod
    def _coerce_str_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, dict):
            return [f"{key}: {item}" for key, item in value.items()]
        if isinstance(value, list):
            return [_as_text(item) for item in value if item is not None]
        return [str(value)]

    @field_validator("description_of_issue", "ai_analysis", "follow_up", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, list):
            return " ".join(str(item) for item in value)
        return str(value)


class Prescription(BaseModel):
    """Cached prescription artifact stored on the session."""

    generated_at: datetime = Field(default_factory=datetime.utcnow)
    disclaimer_text: Optional[str] = None
    payload: Optional[PrescriptionPayload] = None

    @property
    def is_complete(self) -> bool:
        return self.payload is not None and bool(self.disclaimer_text)


class ConversationSession(BaseModel):
    """Conversation session document."""

    session_id: str
    owner_id: Optional[str] = None  # None marks an anonymous session
    stage: Stage = Field(default_factory=first_stage)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Conversation tracking
    messages: List[Message] = Field(default_factory=list)
    detected_symptoms: List[str] = Field(default_factory=list)
    title: Optional[str] = None

    prescription: Optional[Prescription] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "session_id": "session-1712345678",
                "owner_id": None,
                "stage": "symptom_collection",
                "detected_symptoms": ["headache"],
                "title": "I have had a headache since yesterday",
            }
        }
    )

    @property
    def is_anonymous(self) -> bool:
        return self.owner_id is None

    @property
    def has_cached_prescription(self) -> bool:
        return self.prescription is not None and self.prescription.is_complete

    def dialogue_messages(self) -> List[Message]:
        """Transcript without system turns."""
        return [msg for msg in self.messages if msg.role != Role.SYSTEM]
