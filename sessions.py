"""
Learning session store.

Every query is scoped by the caller's user id. A session that exists but
belongs to someone else is reported exactly like one that does not exist.

Flashcards are never written on their own: each message write recomputes them
from the full message list with derive_flashcards().
"""
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import ValidationError

from database import create_document, get_collection, get_documents
from schemas import (
    ChatMessage,
    CreateLearningSession,
    Flashcard,
    LearningSession,
    ToolName,
    utcnow,
)

logger = logging.getLogger(__name__)

COLLECTION = "learningSessions"

NOT_FOUND_ERROR = "Session not found or access denied"
INVALID_ID_ERROR = "Invalid session ID"


class SessionNotFoundError(LookupError):
    """Missing, malformed or not owned by the caller. Deliberately one case."""


def _sessions():
    return get_collection(COLLECTION)


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ()))
    return f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid input")


def to_session(doc: Dict[str, Any]) -> LearningSession:
    d = dict(doc)
    d["_id"] = str(d["_id"])
    return LearningSession.model_validate(d)


def derive_flashcards(messages: List[ChatMessage]) -> List[Flashcard]:
    """
    One card per completed generateFlashcard call, in transcript order.

    Raises ValidationError when a completed result is not a usable card.
    """
    flashcards: List[Flashcard] = []

    for message in messages:
        for invocation in message.tool_invocations or []:
            if invocation.tool_name != ToolName.GENERATE_FLASHCARD.value or invocation.result is None:
                continue
            result = invocation.result
            flashcards.append(Flashcard.model_validate({
                "id": invocation.tool_call_id,
                "type": result.get("type"),
                "question": result.get("question"),
                "answer": result.get("answer"),
                "options": result.get("options"),
                "explanation": result.get("explanation"),
                "answered": False,
            }))

    return flashcards


def session_summary(session: LearningSession) -> Dict[str, Any]:
    data = session.model_dump(by_alias=True, mode="json", exclude={"messages", "flashcards"})
    data["messageCount"] = len(session.messages)
    data["flashcardCount"] = len(session.flashcards)
    return data


def create_learning_session(
    user_id: str,
    title: Optional[str],
    subject: Optional[str],
    description: Optional[str] = None,
) -> Dict[str, Any]:
    try:
        data = CreateLearningSession(title=title, subject=subject, description=description)
    except ValidationError as e:
        return {"success": False, "error": _validation_message(e)}

    try:
        now = utcnow()
        session_id = create_document(COLLECTION, {
            "title": data.title,
            "subject": data.subject,
            "description": data.description or "",
            "userId": user_id,
            "messages": [],
            "flashcards": [],
            "status": "active",
            "createdAt": now,
            "updatedAt": now,
            "lastAccessedAt": now,
        })
    except Exception:
        logger.exception("Error creating learning session")
        return {"success": False, "error": "Failed to create learning session"}

    logger.info("Created learning session %s for user %s", session_id, user_id)
    return {"success": True, "sessionId": session_id}


def get_user_learning_sessions(user_id: str) -> List[LearningSession]:
    try:
        docs = get_documents(COLLECTION, {"userId": user_id}, sort=[("lastAccessedAt", -1)])
    except Exception:
        logger.exception("Error fetching learning sessions")
        return []

    result: List[LearningSession] = []
    for doc in docs:
        try:
            result.append(to_session(doc))
        except ValidationError:
            logger.exception("Skipping unreadable learning session %s", doc.get("_id"))
    return result


def get_learning_session(user_id: str, session_id: str) -> LearningSession:
    if not ObjectId.is_valid(session_id):
        raise SessionNotFoundError(INVALID_ID_ERROR)

    query = {"_id": ObjectId(session_id), "userId": user_id}
    sessions = _sessions()
    doc = sessions.find_one(query)
    if not doc:
        raise SessionNotFoundError(NOT_FOUND_ERROR)

    now = utcnow()
    sessions.update_one(query, {"$set": {"lastAccessedAt": now}})
    doc["lastAccessedAt"] = now
    return to_session(doc)


def update_session_messages(user_id: str, session_id: str, messages: List[ChatMessage]) -> Dict[str, Any]:
    """Replace the whole message list. Concurrent writers: last one wins."""
    if not ObjectId.is_valid(session_id):
        return {"success": False, "error": INVALID_ID_ERROR}

    try:
        flashcards = derive_flashcards(messages)
    except ValidationError as e:
        logger.warning("Rejected messages for session %s: %s", session_id, e)
        return {"success": False, "error": f"Invalid flashcard result: {_validation_message(e)}"}

    try:
        now = utcnow()
        result = _sessions().update_one(
            {"_id": ObjectId(session_id), "userId": user_id},
            {"$set": {
                "messages": [m.model_dump(by_alias=True, exclude_none=True) for m in messages],
                "flashcards": [f.model_dump(by_alias=True, exclude_none=True) for f in flashcards],
                "updatedAt": now,
                "lastAccessedAt": now,
            }},
        )
    except Exception:
        logger.exception("Error updating session messages")
        return {"success": False, "error": "Failed to update session messages"}

    if result.matched_count == 0:
        return {"success": False, "error": NOT_FOUND_ERROR}

    logger.debug("Stored %d messages / %d flashcards on session %s", len(messages), len(flashcards), session_id)
    return {"success": True}


def delete_learning_session(user_id: str, session_id: str) -> Dict[str, Any]:
    if not ObjectId.is_valid(session_id):
        return {"success": False, "error": INVALID_ID_ERROR}

    try:
        result = _sessions().delete_one({"_id": ObjectId(session_id), "userId": user_id})
    except Exception:
        logger.exception("Error deleting learning session")
        return {"success": False, "error": "Failed to delete learning session"}

    if result.deleted_count == 0:
        return {"success": False, "error": NOT_FOUND_ERROR}

    logger.info("Deleted learning session %s", session_id)
    return {"success": True}
