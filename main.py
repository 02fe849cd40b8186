import os
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

import database
from auth import get_current_user_id, get_optional_user_id
from chat import STREAM_HEADERS, start_chat
from llm import InferenceClient, get_inference_client
from message_utils import convert_chat_messages_to_ui_messages
from schemas import ChatRequest, UpdateSessionMessages
from sessions import (
    NOT_FOUND_ERROR,
    SessionNotFoundError,
    create_learning_session,
    delete_learning_session,
    get_learning_session,
    get_user_learning_sessions,
    session_summary,
    update_session_messages,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        database.ensure_indexes()
    except Exception:
        logger.exception("Could not create indexes")
    yield


app = FastAPI(title="AI Tutor API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Helpers
def _result_response(result: Dict[str, Any], ok_status: int = 200) -> JSONResponse:
    if result["success"]:
        return JSONResponse(result, status_code=ok_status)

    error = result.get("error") or ""
    if error == NOT_FOUND_ERROR:
        status = 404
    elif error.startswith("Failed to"):
        status = 500
    else:
        status = 400
    return JSONResponse(result, status_code=status)


@app.get("/")
def root():
    return {"message": "AI Tutor Backend Running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "learning_sessions": None
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["database_url"] = "✅ Set"
            response["database_name"] = database.db.name
            response["connection_status"] = "Connected"
            response["learning_sessions"] = database.db["learningSessions"].count_documents({})
        else:
            response["database"] = "❌ Not Available"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Learning sessions
@app.post("/api/sessions")
def create_session(payload: Dict[str, Any] = Body(...), user_id: str = Depends(get_current_user_id)):
    result = create_learning_session(
        user_id,
        payload.get("title"),
        payload.get("subject"),
        payload.get("description"),
    )
    return _result_response(result, ok_status=201)


@app.get("/api/sessions")
def list_sessions(user_id: str = Depends(get_current_user_id)):
    return [session_summary(s) for s in get_user_learning_sessions(user_id)]


@app.get("/api/sessions/{session_id}")
def get_session(session_id: str, user_id: str = Depends(get_current_user_id)):
    try:
        session = get_learning_session(user_id, session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")

    data = session_summary(session)
    data["messages"] = [m.model_dump(by_alias=True, mode="json", exclude_none=True) for m in session.messages]
    data["flashcards"] = [f.model_dump(by_alias=True, mode="json", exclude_none=True) for f in session.flashcards]
    data["initialMessages"] = [
        m.model_dump(by_alias=True, mode="json", exclude_none=True)
        for m in convert_chat_messages_to_ui_messages(session.messages)
    ]
    return data


@app.put("/api/sessions/{session_id}/messages")
def put_session_messages(
    session_id: str,
    payload: UpdateSessionMessages,
    user_id: str = Depends(get_current_user_id),
):
    return _result_response(update_session_messages(user_id, session_id, payload.messages))


@app.delete("/api/sessions/{session_id}")
def delete_session(session_id: str, user_id: str = Depends(get_current_user_id)):
    return _result_response(delete_learning_session(user_id, session_id))


# Chat
@app.post("/api/chat")
def chat(
    payload: ChatRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    client: InferenceClient = Depends(get_inference_client),
):
    if payload.session_id and not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        body = start_chat(payload, user_id, client)
    except Exception:
        logger.exception("API Error")
        return PlainTextResponse("Internal Server Error", status_code=500)

    return StreamingResponse(body, media_type="text/event-stream", headers=STREAM_HEADERS)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
