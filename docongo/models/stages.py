"""Consultation stage enums and ordering."""

from enum import Enum
from typing import Optional, Union


class Stage(str, Enum):
    """Consultation stages, in workflow order."""

    GREETING = "greeting"
    SYMPTOM_COLLECTION = "symptom_collection"
    DETAILED_ASSESSMENT = "detailed_assessment"
    MEDICAL_HISTORY = "medical_history"
    ANALYSIS = "analysis"
    RECOMMENDATIONS = "recommendations"
    FOLLOW_UP = "follow_up"


class Role(str, Enum):
    """Transcript message roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


STAGE_ORDER = list(Stage)

# Metadata-only stage labels; never stored on a session.
EMERGENCY_STAGE = "emergency"
ERROR_STAGE = "error"


def first_stage() -> Stage:
    return STAGE_ORDER[0]


def last_stage() -> Stage:
    return STAGE_ORDER[-1]


def parse_stage(name: Union[str, Stage, None]) -> Optional[Stage]:
    """Return the catalog stage named by ``name``, or None if unknown."""
    if name is None:
        return None
    if isinstance(name, Stage):
        return name
    try:
        return Stage(str(name).strip().lower())
    except ValueError:
        return None


def stage_index(stage: Union[str, Stage]) -> int:
    """Position of ``stage`` in the catalog order.

    Raises:
        ValueError: if ``stage`` is not a catalog stage
    """
    parsed = parse_stage(stage)
    if parsed is None:
        raise ValueError(f"Unknown stage: {stage!r}")
    return STAGE_ORDER.index(parsed)


def next_stage(stage: Union[str, Stage]) -> Stage:
    """The stage after ``stage``; the last stage maps to itself."""
    index = stage_index(stage)
    return STAGE_ORDER[min(index + 1, len(STAGE_ORDER) - 1)]
