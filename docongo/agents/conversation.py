"""Dialogue orchestrator: the per-turn consultation state machine.

One ``respond`` call runs:
  emergency scan → load-or-create session → prompt render → model call →
  transcript append → output repair → stage/symptom reconciliation → reply.

Model and persistence failures never reach the caller; they are logged and
turned into a canned apology. Ownership violations are raised.
"""

from typing import List, Optional
from docongo.agents.prompts import (
    MASTER_SYSTEM_PROMPT,
    STAGE_INSTRUCTIONS,
    TECHNICAL_DIFFICULTY_MESSAGE,
)
from docongo.config.settings import settings
from docongo.errors import AuthError, ModelTransportError, OwnershipError
from docongo.models.messages import ChatMetadata, ChatResponse, StatusResponse
from docongo.models.session import ConversationSession, Message
from docongo.models.stages import (
    ERROR_STAGE,
    Role,
    Stage,
    first_stage,
    next_stage,
    parse_stage,
    stage_index,
)
from docongo.services.model_gateway import ChatTurn, ModelGateway
from docongo.services.session_service import SessionService
from docongo.utils.output_repair import ConversationOutput, repair_conversation_output
from docongo.utils.red_flags import build_emergency_reply, find_emergency_phrases
from datetime import datetime
import logging

logger = logging.getLogger(__name__)


def stage_instructions(stage: Stage) -> str:
    return STAGE_INSTRUCTIONS[stage].format(region=settings.prescription_region).strip()


def format_history(messages: List[Message]) -> str:
    """Render non-system turns as "User: ..." / "Doctor: ..." lines."""
    return "\n".join(
        f"{'User' if msg.role == Role.USER else 'Doctor'}: {msg.content}"
        for msg in messages
        if msg.role != Role.SYSTEM
    )


def build_system_prompt(stage: Stage, history: str) -> str:
    return MASTER_SYSTEM_PROMPT.format(
        stage=stage.value,
        stage_instructions=stage_instructions(stage),
        history=history or "(none yet)",
    ).strip()


def derive_title(user_text: str, max_length: Optional[int] = None) -> str:
    """Short label from the first user message."""
    if max_length is None:
        max_length = settings.title_max_length
    title = " ".join(user_text.split())
    if len(title) > max_length:
        return title[:max_length].rstrip() + "..."
    return title


def reconcile_stage(
    current: Stage, claimed_stage: Optional[str], advance: bool
) -> Stage:
    """
    Resolve the model's stage claims against the stored stage.

    The target is the claimed stage (when it names a catalog stage) moved one
    step further if ``advance`` is set. Any target ahead of ``current``
    advances the session by exactly one step; anything else keeps ``current``.
    """
    target = parse_stage(claimed_stage) or current
    if advance:
        target = next_stage(target)

    if stage_index(target) > stage_index(current):
        return next_stage(current)
    return current


def merge_symptoms(existing: List[str], detected: List[str]) -> List[str]:
    """Insertion-ordered union, exact-match dedupe."""
    merged = list(existing)
    for symptom in detected:
        if symptom not in merged:
            merged.append(symptom)
    return merged


class DialogueOrchestrator:
    """Per-request conversation handler."""

    def __init__(self, gateway: Optional[ModelGateway], sessions: SessionService):
        # gateway may be None when the caller has no model key; emergency
        # replies still work without one.
        self.gateway = gateway
        self.sessions = sessions

    async def respond(
        self, session_id: str, user_text: str, owner_id: Optional[str] = None
    ) -> ChatResponse:
        """
        Produce the reply for one user message.

        Args:
            session_id: Caller-supplied session identifier
            user_text: The user's message
            owner_id: Authenticated account id, or None for anonymous callers

        Returns:
            ChatResponse with message and metadata

        Emergency messages always get the safety reply, whoever owns the session.

        Raises:
            AuthError: no model gateway for a non-emergency message, or an
                anonymous caller on a session owned by an account
            OwnershipError: session owned by a different account
        """
        matched = find_emergency_phrases(user_text)
        if matched:
            logger.warning(
                f"🚨 Emergency phrases detected for session {session_id}: {matched}"
            )
            await self._record_emergency_turn(session_id, user_text, owner_id)
            return build_emergency_reply(matched)

        if self.gateway is None:
            raise AuthError("Model API key is required. Please add your API key.")

        session: Optional[ConversationSession] = None
        try:
            session, created = await self.sessions.get_or_create_session(
                session_id, build_system_prompt(first_stage(), "")
            )
            await self._check_access(session, owner_id)

            system_prompt = build_system_prompt(
                session.stage, format_history(session.messages)
            )
            raw_text = await self.gateway.invoke(
                [
                    ChatTurn(role=Role.SYSTEM, text=system_prompt),
                    ChatTurn(role=Role.USER, text=user_text),
                ]
            )

            now = datetime.utcnow()
            await self.sessions.append_messages(
                session_id,
                [
                    Message(role=Role.USER, content=user_text, timestamp=now),
                    Message(role=Role.ASSISTANT, content=raw_text, timestamp=now),
                ],
            )
            if session.title is None:
                await self.sessions.set_title_if_absent(
                    session_id, derive_title(user_text)
                )

            output = repair_conversation_output(raw_text)
            return await self._reconcile(session, output)

        except AuthError:
            raise
        except ModelTransportError as e:
            logger.error(f"Model call failed for session {session_id}: {e}", exc_info=True)
            return self._error_reply(session, "model_transport")
        except Exception as e:
            logger.error(f"Error in conversation for session {session_id}: {e}", exc_info=True)
            return self._error_reply(session, "internal")

    async def _reconcile(
        self, session: ConversationSession, output: ConversationOutput
    ) -> ChatResponse:
        new_stage = reconcile_stage(session.stage, output.current_stage, output.next_stage)
        claimed = parse_stage(output.current_stage)
        if new_stage != session.stage:
            logger.info(
                f"Session {session.session_id} advanced: {session.stage.value} → {new_stage.value}"
            )
        elif claimed is not None and claimed != session.stage:
            logger.info(
                f"Ignored stage claim {claimed.value} for session {session.session_id} "
                f"(stays at {session.stage.value})"
            )

        symptoms = merge_symptoms(session.detected_symptoms, output.detected_symptoms)
        await self.sessions.apply_turn_updates(
            session.session_id, new_stage, output.detected_symptoms
        )

        return ChatResponse(
            message=output.message,
            metadata=ChatMetadata(
                stage=new_stage.value,
                current_stage=output.current_stage or new_stage.value,
                next_stage=output.next_stage,
                detected_symptoms=symptoms,
                confidence_level=output.confidence_level,
                suggested_followup=output.suggested_followup,
                output_kind=output.kind,
            ),
        )

    async def _check_access(
        self, session: ConversationSession, owner_id: Optional[str]
    ) -> None:
        if session.owner_id is None:
            if owner_id is not None:
                claimed = await self.sessions.claim_ownership(session.session_id, owner_id)
                if claimed:
                    session.owner_id = owner_id
                    return
                # Lost a race to another claimant
                refreshed = await self.sessions.get_session(session.session_id)
                if refreshed is not None and refreshed.owner_id != owner_id:
                    raise OwnershipError("Access denied to this conversation")
            return

        if owner_id is None:
            raise AuthError("This conversation belongs to an account. Please sign in.")
        if session.owner_id != owner_id:
            raise OwnershipError("Access denied to this conversation")

    async def _record_emergency_turn(
        self, session_id: str, user_text: str, owner_id: Optional[str]
    ) -> None:
        """
        Keep the user's message for audit; no assistant turn, stage untouched.

        Never raises: the safety reply goes out even when the caller may not
        write to the session, in which case only the audit append is skipped.
        """
        try:
            session, _ = await self.sessions.get_or_create_session(
                session_id, build_system_prompt(first_stage(), "")
            )
            await self._check_access(session, owner_id)
            await self.sessions.append_messages(
                session_id, [Message(role=Role.USER, content=user_text)]
            )
            if session.title is None:
                await self.sessions.set_title_if_absent(
                    session_id, derive_title(user_text)
                )
        except AuthError as e:
            logger.warning(
                f"Emergency message not recorded for session {session_id}: {e.detail}"
            )
        except Exception as e:
            logger.error(
                f"Failed to record emergency message for session {session_id}: {e}",
                exc_info=True,
            )

    @staticmethod
    def _error_reply(
        session: Optional[ConversationSession], error: str
    ) -> ChatResponse:
        stage = session.stage.value if session is not None else ERROR_STAGE
        return ChatResponse(
            message=TECHNICAL_DIFFICULTY_MESSAGE,
            metadata=ChatMetadata(
                stage=stage,
                current_stage=stage,
                next_stage=False,
                detected_symptoms=list(session.detected_symptoms) if session else [],
                confidence_level=0.0,
                suggested_followup="Could you please try again with a simpler description?",
                output_kind="error",
                error=error,
            ),
        )

    async def reset(self, session_id: str) -> None:
        """Delete the session; a missing session is fine."""
        await self.sessions.delete_session(session_id)
        logger.info(f"Conversation reset for session: {session_id}")

    async def status(self, session_id: str) -> StatusResponse:
        session = await self.sessions.get_session(session_id)
        if session is None:
            return StatusResponse(
                exists=False, message="No conversation found for this session"
            )
        return StatusResponse(
            exists=True,
            stage=session.stage,
            messages_count=len(session.messages),
            detected_symptoms=session.detected_symptoms,
            last_updated=session.updated_at,
        )
