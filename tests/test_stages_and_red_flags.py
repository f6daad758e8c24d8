from __future__ import annotations

import pytest

from docongo.agents.conversation import reconcile_stage
from docongo.agents.prompts import EMERGENCY_RESPONSE, STAGE_INSTRUCTIONS
from docongo.models.stages import (
    STAGE_ORDER,
    Stage,
    first_stage,
    next_stage,
    parse_stage,
    stage_index,
)
from docongo.utils.red_flags import (
    build_emergency_reply,
    detect_emergency,
    find_emergency_phrases,
)


def test_catalog_order_and_lookups():
    assert first_stage() == Stage.GREETING
    assert [s.value for s in STAGE_ORDER] == [
        "greeting",
        "symptom_collection",
        "detailed_assessment",
        "medical_history",
        "analysis",
        "recommendations",
        "follow_up",
    ]
    assert stage_index("medical_history") == 3
    assert next_stage(Stage.GREETING) == Stage.SYMPTOM_COLLECTION
    assert next_stage(Stage.FOLLOW_UP) == Stage.FOLLOW_UP
    assert all(stage in STAGE_INSTRUCTIONS for stage in STAGE_ORDER)


def test_parse_stage_rejects_unknown_names():
    assert parse_stage("Analysis") == Stage.ANALYSIS
    assert parse_stage("diagnosis") is None
    assert parse_stage(None) is None
    with pytest.raises(ValueError):
        stage_index("emergency")


@pytest.mark.parametrize(
    "current, claimed, advance, expected",
    [
        (Stage.GREETING, "greeting", False, Stage.GREETING),
        (Stage.GREETING, "greeting", True, Stage.SYMPTOM_COLLECTION),
        # skipping ahead is clamped to a single step
        (Stage.GREETING, "recommendations", True, Stage.SYMPTOM_COLLECTION),
        (Stage.GREETING, "analysis", False, Stage.SYMPTOM_COLLECTION),
        # regressions are ignored
        (Stage.MEDICAL_HISTORY, "greeting", False, Stage.MEDICAL_HISTORY),
        (Stage.MEDICAL_HISTORY, "greeting", True, Stage.MEDICAL_HISTORY),
        # unknown stage names fall back to the stored stage
        (Stage.ANALYSIS, "diagnosis", True, Stage.RECOMMENDATIONS),
        (Stage.ANALYSIS, None, False, Stage.ANALYSIS),
        (Stage.FOLLOW_UP, "follow_up", True, Stage.FOLLOW_UP),
    ],
)
def test_reconcile_stage_moves_forward_at_most_one_step(current, claimed, advance, expected):
    assert reconcile_stage(current, claimed, advance) == expected


def test_emergency_detection_is_case_insensitive_substring():
    assert detect_emergency("I'm having severe CHEST PAIN right now")
    assert detect_emergency("thinking about suicide")
    assert not detect_emergency("I have a mild headache")
    assert not detect_emergency("")


def test_find_emergency_phrases_reports_each_match_once():
    matched = find_emergency_phrases(
        "Chest pain and difficulty breathing, chest pain again"
    )
    assert matched == ["chest pain", "difficulty breathing"]


def test_custom_phrase_list():
    assert detect_emergency("my dog bit me", phrases=["dog bit"])
    assert not detect_emergency("chest pain", phrases=["dog bit"])


def test_emergency_reply_shape():
    reply = build_emergency_reply(["chest pain"])
    assert reply.message == EMERGENCY_RESPONSE
    assert reply.metadata.stage == "emergency"
    assert reply.metadata.current_stage == "emergency"
    assert reply.metadata.next_stage is False
    assert reply.metadata.confidence_level == 1.0
    assert reply.metadata.detected_symptoms == ["chest pain"]
