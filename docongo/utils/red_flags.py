"""Emergency phrase detection for inbound user messages."""

from typing import List, Optional, Sequence
from docongo.agents.prompts import EMERGENCY_RESPONSE
from docongo.config.settings import settings
from docongo.models.messages import ChatMetadata, ChatResponse
from docongo.models.stages import EMERGENCY_STAGE


def find_emergency_phrases(
    text: str, phrases: Optional[Sequence[str]] = None
) -> List[str]:
    """
    Find configured emergency phrases in user input.

    Args:
        text: User message text
        phrases: Phrase list to scan for (defaults to settings.emergency_phrases)

    Returns:
        Matched phrases in list order, each reported once
    """
    if not text:
        return []
    if phrases is None:
        phrases = settings.emergency_phrases

    text_lower = text.lower()
    return [phrase for phrase in phrases if phrase and phrase.lower() in text_lower]


def detect_emergency(text: str, phrases: Optional[Sequence[str]] = None) -> bool:
    """Case-insensitive substring scan; True when any emergency phrase occurs."""
    return len(find_emergency_phrases(text, phrases)) > 0


def build_emergency_reply(matched_phrases: List[str]) -> ChatResponse:
    """Canned safety reply; never model-generated."""
    return ChatResponse(
        message=EMERGENCY_RESPONSE,
        metadata=ChatMetadata(
            stage=EMERGENCY_STAGE,
            current_stage=EMERGENCY_STAGE,
            next_stage=False,
            detected_symptoms=list(matched_phrases),
            confidence_level=1.0,
            suggested_followup="Please seek immediate medical attention.",
            output_kind="emergency",
        ),
    )
