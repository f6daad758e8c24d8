"""Conversation session persistence service."""

from docongo.models.session import ConversationSession, Message, Prescription
from docongo.models.stages import Stage, first_stage
from docongo.config.database import get_sessions_collection
from pymongo.errors import DuplicateKeyError
from typing import Optional, List, Tuple
from datetime import datetime
import logging

logger = logging.getLogger(__name__)


class SessionService:
    """Service for storing and updating conversation sessions."""

    async def get_session(self, session_id: str) -> Optional[ConversationSession]:
        """
        Get a session by ID.

        Args:
            session_id: Session identifier

        Returns:
            ConversationSession or None if not found
        """
        collection = await get_sessions_collection()
        doc = await collection.find_one({"session_id": session_id})

        if doc:
            return ConversationSession(**doc)
        return None

    async def get_or_create_session(
        self, session_id: str, seed_message: str
    ) -> Tuple[ConversationSession, bool]:
        """
        Load a session, creating it on first use.

        Args:
            session_id: Caller-supplied session identifier
            seed_message: Content of the system turn for a new transcript

        Returns:
            Tuple of (session, created)
        """
        existing = await self.get_session(session_id)
        if existing:
            return existing, False

        now = datetime.utcnow()
        session = ConversationSession(
            session_id=session_id,
            stage=first_stage(),
            created_at=now,
            updated_at=now,
            messages=[Message(role="system", content=seed_message, timestamp=now)],
        )

        collection = await get_sessions_collection()
        try:
            await collection.insert_one(session.model_dump())
        except DuplicateKeyError:
            # Another request created it first
            logger.info(f"Session {session_id} created concurrently, reloading")
            existing = await self.get_session(session_id)
            if existing:
                return existing, False
            raise

        logger.info(f"Created session {session_id}")
        return session, True

    async def append_messages(self, session_id: str, messages: List[Message]) -> bool:
        """
        Append turns to the transcript.

        Args:
            session_id: Session identifier
            messages: Turns to append, in order

        Returns:
            True if successful
        """
        collection = await get_sessions_collection()
        result = await collection.update_one(
            {"session_id": session_id},
            {
                "$push": {"messages": {"$each": [m.model_dump() for m in messages]}},
                "$set": {"updated_at": datetime.utcnow()},
            },
        )
        return result.modified_count > 0

    async def set_title_if_absent(self, session_id: str, title: str) -> bool:
        """Set the session title unless one is already set."""
        collection = await get_sessions_collection()
        result = await collection.update_one(
            {"session_id": session_id, "title": None},
            {"$set": {"title": title}},
        )
        return result.modified_count > 0

    async def claim_ownership(self, session_id: str, owner_id: str) -> bool:
        """
        Attach an anonymous session to an account.

        Only matches while ``owner_id`` is still null, so ownership is never
        transferred between accounts.

        Returns:
            True if this call claimed the session
        """
        collection = await get_sessions_collection()
        result = await collection.update_one(
            {"session_id": session_id, "owner_id": None},
            {"$set": {"owner_id": owner_id, "updated_at": datetime.utcnow()}},
        )
        if result.modified_count > 0:
            logger.info(f"Session {session_id} claimed by user {owner_id}")
            return True
        return False

    async def apply_turn_updates(
        self, session_id: str, stage: Stage, new_symptoms: List[str]
    ) -> bool:
        """
        Persist the reconciled stage and merge detected symptoms.

        ``$addToSet`` keeps insertion order and ignores exact duplicates.

        Returns:
            True if successful
        """
        update = {"$set": {"stage": stage, "updated_at": datetime.utcnow()}}
        if new_symptoms:
            update["$addToSet"] = {"detected_symptoms": {"$each": list(new_symptoms)}}

        collection = await get_sessions_collection()
        result = await collection.update_one({"session_id": session_id}, update)
        return result.modified_count > 0

    async def set_prescription_if_absent(
        self, session_id: str, prescription: Prescription
    ) -> bool:
        """
        Store a prescription unless a complete one is already there.

        Returns:
            True if this call wrote the prescription, False if another
            writer already stored a complete one
        """
        collection = await get_sessions_collection()
        result = await collection.update_one(
            {
                "session_id": session_id,
                "$or": [
                    {"prescription": None},
                    {"prescription.payload": None},
                    {"prescription.disclaimer_text": None},
                ],
            },
            {
                "$set": {
                    "prescription": prescription.model_dump(),
                    "updated_at": datetime.utcnow(),
                }
            },
        )
        if result.modified_count > 0:
            logger.info(f"Stored prescription for session {session_id}")
            return True
        return False

    async def delete_session(self, session_id: str) -> bool:
        """
        Delete a session. Deleting a missing session is not an error.

        Returns:
            True if a document was removed
        """
        collection = await get_sessions_collection()
        result = await collection.delete_one({"session_id": session_id})
        if result.deleted_count > 0:
            logger.info(f"Deleted session {session_id}")
            return True
        return False

    async def rename_session(self, session_id: str, title: str) -> bool:
        collection = await get_sessions_collection()
        result = await collection.update_one(
            {"session_id": session_id},
            {"$set": {"title": title, "updated_at": datetime.utcnow()}},
        )
        return result.matched_count > 0

    async def list_sessions(
        self, owner_id: str, limit: int = 20, offset: int = 0
    ) -> List[ConversationSession]:
        """
        Get the sessions owned by a user, most recently updated first.

        Args:
            owner_id: Account identifier
            limit: Maximum number of sessions to return
            offset: Number of sessions to skip

        Returns:
            List of ConversationSession
        """
        collection = await get_sessions_collection()
        cursor = (
            collection.find({"owner_id": owner_id})
            .sort("updated_at", -1)
            .skip(offset)
            .limit(limit)
        )

        sessions = []
        async for doc in cursor:
            sessions.append(ConversationSession(**doc))

        return sessions

    async def count_sessions(self, owner_id: str) -> int:
        collection = await get_sessions_collection()
        return await collection.count_documents({"owner_id": owner_id})


# Global service instance
_session_service: Optional[SessionService] = None


def get_session_service() -> SessionService:
    """Get or create SessionService instance."""
    global _session_service
    if _session_service is None:
        _session_service = SessionService()
    return _session_service
