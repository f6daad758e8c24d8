"""Prescription synthesizer.

Turns a completed consultation transcript into a structured prescription and
caches it on the session. A stored prescription with both payload and
disclaimer is returned as-is on every later request; generation happens at
most once per session even when two requests race.
"""

from typing import Any, Dict
from docongo.agents.prompts import (
    PRESCRIPTION_DISCLAIMER,
    PRESCRIPTION_METADATA_TEMPLATE,
    PRESCRIPTION_SYSTEM_PROMPT,
    PRESCRIPTION_USER_PROMPT,
    formulary_guidance_for,
)
from docongo.config.settings import settings
from docongo.errors import ContentParseFailure, DocOnGoError, NotFoundError
from docongo.models.messages import PrescriptionResult
from docongo.models.session import ConversationSession, Prescription, PrescriptionPayload
from docongo.models.stages import Role
from docongo.services.model_gateway import ChatTurn, ModelGateway
from docongo.services.session_service import SessionService
from docongo.utils.output_repair import repair_prescription_output
from pydantic import ValidationError
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("description_of_issue", "ai_analysis", "medicines", "general_tips")


def format_transcript(session: ConversationSession) -> str:
    return "\n".join(
        f"{'Patient' if msg.role == Role.USER else 'Dr. AI'}: {msg.content}"
        for msg in session.dialogue_messages()
    )


def format_metadata(session: ConversationSession) -> str:
    return PRESCRIPTION_METADATA_TEMPLATE.format(
        stage=session.stage.value,
        symptoms=", ".join(session.detected_symptoms) or "None recorded",
        created_at=session.created_at.isoformat(),
        updated_at=session.updated_at.isoformat(),
        message_count=len(session.messages),
    )


def build_prescription_prompt(session: ConversationSession, region: str) -> str:
    return PRESCRIPTION_SYSTEM_PROMPT.format(
        region=region,
        formulary_guidance=formulary_guidance_for(region),
        history=format_transcript(session),
        metadata=format_metadata(session),
    ).strip()


def normalize_payload(parsed: Dict[str, Any]) -> PrescriptionPayload:
    """
    Coerce parsed model output into a payload, keeping whatever is usable.

    Missing required fields are logged, not rejected.
    """
    for field in REQUIRED_FIELDS:
        if not parsed.get(field):
            logger.warning(f"Missing required field in prescription: {field}")

    # Older prompt wording used "indian_availability"
    medicines = parsed.get("medicines")
    if isinstance(medicines, list):
        for medicine in medicines:
            if isinstance(medicine, dict) and "availability" not in medicine:
                if "indian_availability" in medicine:
                    medicine["availability"] = medicine.pop("indian_availability")

    try:
        return PrescriptionPayload(**parsed)
    except ValidationError as e:
        raise ContentParseFailure(f"Prescription did not match the expected structure: {e}") from e


class PrescriptionSynthesizer:
    """Per-request prescription generator with a read-through session cache."""

    def __init__(self, gateway: ModelGateway, sessions: SessionService):
        self.gateway = gateway
        self.sessions = sessions

    async def synthesize(self, session_id: str) -> PrescriptionResult:
        """
        Return the session's prescription, generating it on first request.

        Raises:
            NotFoundError: session does not exist
            ModelTransportError: the model call failed
            ContentParseFailure: model output could not be repaired into JSON
        """
        session = await self.sessions.get_session(session_id)
        if session is None:
            raise NotFoundError("Conversation not found")

        if session.has_cached_prescription:
            logger.info(f"Returning cached prescription for session {session_id}")
            return PrescriptionResult(cached=True, prescription=session.prescription)

        logger.info(f"Generating prescription for session: {session_id}")
        prompt = build_prescription_prompt(session, settings.prescription_region)
        raw_text = await self.gateway.invoke(
            [
                ChatTurn(role=Role.SYSTEM, text=prompt),
                ChatTurn(role=Role.USER, text=PRESCRIPTION_USER_PROMPT),
            ]
        )

        payload = normalize_payload(repair_prescription_output(raw_text))
        prescription = Prescription(
            generated_at=datetime.utcnow(),
            disclaimer_text=PRESCRIPTION_DISCLAIMER,
            payload=payload,
        )

        stored = await self.sessions.set_prescription_if_absent(session_id, prescription)
        if stored:
            logger.info("Prescription generated successfully")
            return PrescriptionResult(cached=False, prescription=prescription)

        # A concurrent request stored its prescription first; that one wins.
        current = await self.sessions.get_session(session_id)
        if current is None:
            raise NotFoundError("Conversation not found")
        if current.has_cached_prescription:
            logger.info(f"Concurrent prescription already stored for session {session_id}")
            return PrescriptionResult(cached=True, prescription=current.prescription)
        raise DocOnGoError("Prescription could not be stored")

    async def get_prescription(self, session_id: str) -> Prescription:
        """Cached prescription only; never calls the model."""
        session = await self.sessions.get_session(session_id)
        if session is None:
            raise NotFoundError("Conversation not found")
        if not session.has_cached_prescription:
            raise NotFoundError("No prescription has been generated for this conversation")
        return session.prescription
