"""Conversation API endpoints.

Dr. AI runs a staged consultation (greeting → symptom collection → detailed
assessment → medical history → analysis → recommendations → follow-up) and,
once enough has been discussed, produces a structured prescription:
- /chat: one conversational turn (anonymous or authenticated)
- /reset, /status: session lifecycle helpers
- /{session_id}/prescription: generate or fetch the cached prescription
- /history, /{session_id}: the caller's saved conversations
"""

from fastapi import APIRouter, Depends, Query
from typing import Any, Dict, Optional
from docongo.agents.conversation import DialogueOrchestrator
from docongo.agents.prescription import PrescriptionSynthesizer
from docongo.api.dependencies import (
    get_conversation_gateway,
    get_current_user,
    get_optional_user,
    get_prescription_gateway,
    get_sessions,
)
from docongo.config.settings import settings
from docongo.errors import AuthError, NotFoundError, OwnershipError, ValidationError
from docongo.models.messages import (
    ChatRequest,
    ChatResponse,
    PrescriptionResult,
    RenameRequest,
    ResetResponse,
    SessionDetailsResponse,
    SessionRequest,
    SessionSummary,
    StatusResponse,
    UserSessionsResponse,
)
from docongo.models.session import ConversationSession, Prescription
from docongo.services.model_gateway import ModelGateway
from docongo.services.session_service import SessionService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/conversation", tags=["Conversation"])


def _user_id(user: Optional[Dict[str, Any]]) -> Optional[str]:
    return user.get("user_id") if user else None


def ensure_can_read(session: ConversationSession, user: Optional[Dict[str, Any]]) -> None:
    """Anonymous sessions are open to anyone holding the id; owned ones only to the owner."""
    if session.owner_id is None:
        return
    if user is None:
        raise AuthError("This conversation belongs to an account. Please sign in.")
    if session.owner_id != _user_id(user):
        raise OwnershipError("Access denied to this conversation")


def ensure_owner(session: ConversationSession, user: Dict[str, Any]) -> None:
    if session.owner_id != _user_id(user):
        raise OwnershipError("Access denied to this conversation")


async def _load_session(sessions: SessionService, session_id: str) -> ConversationSession:
    session = await sessions.get_session(session_id)
    if session is None:
        raise NotFoundError("Conversation not found")
    return session


def _require_text(value: str, field: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    gateway: Optional[ModelGateway] = Depends(get_conversation_gateway),
    sessions: SessionService = Depends(get_sessions),
):
    """
    Send one message and get Dr. AI's reply with stage metadata.

    The session is created on first use. An authenticated caller claims an
    anonymous session; emergency messages get a fixed safety reply.
    """
    session_id = _require_text(request.session_id, "session_id")
    message = _require_text(request.message, "message")

    logger.info(f"Processing chat request for session: {session_id}")
    orchestrator = DialogueOrchestrator(gateway, sessions)
    return await orchestrator.respond(session_id, message, owner_id=_user_id(user))


@router.post("/reset", response_model=ResetResponse)
async def reset(
    request: SessionRequest,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    sessions: SessionService = Depends(get_sessions),
):
    """Delete the conversation so the next message starts fresh."""
    session_id = _require_text(request.session_id, "session_id")

    session = await sessions.get_session(session_id)
    if session is not None:
        ensure_can_read(session, user)

    await DialogueOrchestrator(None, sessions).reset(session_id)
    return ResetResponse()


@router.get("/status/{session_id}", response_model=StatusResponse)
async def status(
    session_id: str,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    sessions: SessionService = Depends(get_sessions),
):
    """Stage, message count and detected symptoms of a conversation."""
    session = await sessions.get_session(session_id)
    if session is not None:
        ensure_can_read(session, user)
    return await DialogueOrchestrator(None, sessions).status(session_id)


@router.get("/history", response_model=UserSessionsResponse)
async def history(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: Dict[str, Any] = Depends(get_current_user),
    sessions: SessionService = Depends(get_sessions),
):
    """The caller's conversations, most recently updated first."""
    owner_id = user["user_id"]
    items = await sessions.list_sessions(owner_id, limit=limit, offset=offset)
    total = await sessions.count_sessions(owner_id)

    return UserSessionsResponse(
        total=total,
        limit=limit,
        offset=offset,
        sessions=[
            SessionSummary(
                session_id=s.session_id,
                title=s.title,
                stage=s.stage,
                created_at=s.created_at,
                updated_at=s.updated_at,
                message_count=len(s.dialogue_messages()),
                has_prescription=s.has_cached_prescription,
            )
            for s in items
        ],
    )


@router.post("/{session_id}/prescription", response_model=PrescriptionResult)
async def generate_prescription(
    session_id: str,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    gateway: ModelGateway = Depends(get_prescription_gateway),
    sessions: SessionService = Depends(get_sessions),
):
    """
    Generate the prescription for a conversation, or return the cached one.

    Same access rule as reading the conversation: anonymous sessions are open
    to whoever holds the id, owned ones only to the owner.
    """
    session = await _load_session(sessions, session_id)
    ensure_can_read(session, user)

    if not session.has_cached_prescription and (
        len(session.messages) < settings.prescription_min_messages
    ):
        raise ValidationError(
            "Conversation is too short to generate a prescription. "
            f"At least {settings.prescription_min_messages} messages are required."
        )

    return await PrescriptionSynthesizer(gateway, sessions).synthesize(session_id)


@router.get("/{session_id}/prescription", response_model=Prescription)
async def get_prescription(
    session_id: str,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    sessions: SessionService = Depends(get_sessions),
):
    """Fetch an already generated prescription."""
    session = await _load_session(sessions, session_id)
    ensure_can_read(session, user)
    if not session.has_cached_prescription:
        raise NotFoundError("No prescription has been generated for this conversation")
    return session.prescription


@router.get("/{session_id}", response_model=SessionDetailsResponse)
async def get_conversation(
    session_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    sessions: SessionService = Depends(get_sessions),
):
    """Full transcript of one of the caller's conversations."""
    session = await _load_session(sessions, session_id)
    ensure_owner(session, user)

    return SessionDetailsResponse(
        session_id=session.session_id,
        title=session.title,
        stage=session.stage,
        created_at=session.created_at,
        updated_at=session.updated_at,
        messages=session.dialogue_messages(),
        detected_symptoms=session.detected_symptoms,
        prescription=session.prescription,
    )


@router.patch("/{session_id}", response_model=SessionSummary)
async def rename_conversation(
    session_id: str,
    request: RenameRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    sessions: SessionService = Depends(get_sessions),
):
    """Rename one of the caller's conversations."""
    title = _require_text(request.title, "title")
    session = await _load_session(sessions, session_id)
    ensure_owner(session, user)

    await sessions.rename_session(session_id, title)
    session = await _load_session(sessions, session_id)
    return SessionSummary(
        session_id=session.session_id,
        title=session.title,
        stage=session.stage,
        created_at=session.created_at,
        updated_at=session.updated_at,
        message_count=len(session.dialogue_messages()),
        has_prescription=session.has_cached_prescription,
    )


@router.delete("/{session_id}", response_model=ResetResponse)
async def delete_conversation(
    session_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    sessions: SessionService = Depends(get_sessions),
):
    """Delete one of the caller's conversations."""
    session = await _load_session(sessions, session_id)
    ensure_owner(session, user)

    await sessions.delete_session(session_id)
    return ResetResponse(message="Conversation deleted.")
