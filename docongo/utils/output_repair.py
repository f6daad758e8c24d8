"""Turn possibly-malformed model text into usable structured output.

Parsing is an ordered list of strategies. Each strategy takes the raw text
and returns a dict or None; ``first_success`` short-circuits on the first
dict. Conversation output always ends in a usable object (falling back to a
canned apology); prescription output raises ``ContentParseFailure`` when no
strategy succeeds.
"""

from pydantic import BaseModel, Field, ValidationError, field_validator
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence, Tuple, Union
from docongo.agents.prompts import APOLOGY_MESSAGE, DEFAULT_FOLLOWUP
from docongo.errors import ContentParseFailure
import json
import logging
import re

logger = logging.getLogger(__name__)

ParseStrategy = Callable[[str], Optional[Dict[str, Any]]]

_MESSAGE_FIELD_RE = re.compile(
    r"""["']message["']\s*:\s*(?:"((?:[^"\\]|\\.)*)"|'((?:[^'\\]|\\.)*)')""",
    re.DOTALL,
)


def strip_md_fences(text: str) -> str:
    """Strip markdown code fences that the LLM sometimes wraps JSON in.

    Handles patterns like:
        ```json\\n{...}\\n```
        ```\\n{...}\\n```
    """
    stripped = text.strip()
    match = re.match(r"^```(?:json)?\s*\n?(.*?)\n?```\s*$", stripped, re.DOTALL)
    if match:
        return match.group(1).strip()
    return stripped


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def parse_strict_json(text: str) -> Optional[Dict[str, Any]]:
    """The whole (fence-stripped) text must be one JSON object."""
    try:
        parsed = json.loads(strip_md_fences(text))
    except (ValueError, TypeError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_message_field(text: str) -> Optional[Dict[str, Any]]:
    """Pull just the ``message`` string out of broken JSON-ish text."""
    match = _MESSAGE_FIELD_RE.search(text)
    if not match:
        return None
    raw = match.group(1) if match.group(1) is not None else match.group(2)
    try:
        message = json.loads(f'"{raw}"')
    except (ValueError, RecursionError):
        message = raw
    message = message.strip()
    if not message:
        return None
    return {"message": message}


def extract_first_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Decode the first top-level ``{...}`` object embedded in surrounding text."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            parsed, _ = decoder.raw_decode(text, start)
        except (ValueError, RecursionError):
            start = text.find("{", start + 1)
            continue
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)
    return None


def first_success(
    strategies: Sequence[ParseStrategy], text: str
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Run strategies in order; return (result, strategy_name) of the first hit."""
    if not text:
        return None, None
    for strategy in strategies:
        result = strategy(text)
        if result is not None:
            return result, strategy.__name__
    return None, None


# ---------------------------------------------------------------------------
# Conversation output
# ---------------------------------------------------------------------------


class _ReplyFields(BaseModel):
    """Fields shared by every conversation output variant."""

    current_stage: Optional[str] = None
    next_stage: bool = False
    detected_symptoms: List[str] = Field(default_factory=list)
    confidence_level: float = 0.5
    suggested_followup: str = ""

    @field_validator("detected_symptoms", mode="before")
    @classmethod
    def _clean_symptoms(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return [str(item).strip() for item in value if item is not None and str(item).strip()]

    @field_validator("confidence_level", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.5
        if number != number:  # NaN
            return 0.5
        return max(0.0, min(1.0, number))

    @field_validator("next_stage", mode="before")
    @classmethod
    def _none_to_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("suggested_followup", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("current_stage", mode="before")
    @classmethod
    def _stage_to_str(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)


class StructuredOutput(_ReplyFields):
    """The model's text parsed as the full reply object."""

    kind: Literal["structured"] = "structured"
    message: str


class RepairedOutput(_ReplyFields):
    """Only the message could be recovered; other fields are defaults."""

    kind: Literal["repaired"] = "repaired"
    message: str
    suggested_followup: str = DEFAULT_FOLLOWUP


class FallbackOutput(_ReplyFields):
    """Nothing usable in the model's text."""

    kind: Literal["fallback"] = "fallback"
    message: str = APOLOGY_MESSAGE
    suggested_followup: str = DEFAULT_FOLLOWUP


ConversationOutput = Union[StructuredOutput, RepairedOutput, FallbackOutput]


def repair_conversation_output(raw_text: Any) -> ConversationOutput:
    """
    Parse a conversation reply. Never raises.

    Order: strict JSON object validated as StructuredOutput, then regex
    extraction of the message field, then the canned fallback.
    """
    text = raw_text if isinstance(raw_text, str) else ("" if raw_text is None else str(raw_text))

    parsed = parse_strict_json(text) if text else None
    if parsed is not None:
        try:
            return StructuredOutput(**parsed)
        except (ValidationError, TypeError) as e:
            logger.warning(f"Model JSON did not match reply schema: {e}")

    repaired, strategy = first_success([extract_message_field], text)
    if repaired is not None:
        logger.warning(f"Repaired model reply using {strategy}")
        return RepairedOutput(message=repaired["message"])

    logger.warning(f"Falling back to canned reply; raw response: {text[:200]!r}")
    return FallbackOutput()


# ---------------------------------------------------------------------------
# Prescription output
# ---------------------------------------------------------------------------

PRESCRIPTION_STRATEGIES: List[ParseStrategy] = [
    parse_strict_json,
    extract_first_json_object,
]


def repair_prescription_output(raw_text: Any) -> Dict[str, Any]:
    """
    Parse a prescription reply.

    Raises:
        ContentParseFailure: if no strategy yields a JSON object
    """
    text = raw_text if isinstance(raw_text, str) else ("" if raw_text is None else str(raw_text))
    parsed, strategy = first_success(PRESCRIPTION_STRATEGIES, text)
    if parsed is None:
        logger.error(f"No valid JSON found in prescription response: {text[:200]!r}")
        raise ContentParseFailure("Failed to generate valid prescription format")
    if strategy != parse_strict_json.__name__:
        logger.warning(f"Prescription response repaired using {strategy}")
    return parsed
