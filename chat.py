"""
Chat orchestration.

One request = one model turn:
  1. merge the persisted session history in front of the incoming message,
  2. prune what the model must not see again,
  3. stream the model's answer as UI message stream events (SSE),
  4. on completion, write the whole transcript back to the session.

Steps 1-3 run before the response starts, so their failures can still become
a plain 500. Anything after that is logged and the stream is closed.
"""
import json
import uuid
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from llm import InferenceClient
from message_utils import convert_chat_messages_to_ui_messages, convert_ui_messages_to_chat_messages
from schemas import ChatRequest, TextUIPart, ToolUIPart, UIMessage
from sessions import get_learning_session, update_session_messages
from tools import ToolError, tools

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an AI tutor. When users ask for flashcards or learning materials, you MUST call the generateFlashcard tool. Do not describe flashcards in text - actually call the tool.

ALWAYS call generateFlashcard when users ask for flashcards or learning materials.

Vary the card type across turns: use "basic" for a plain question and answer, and "multiple-choice" for a question with options.

For "multiple-choice" cards ALWAYS supply exactly 4 options, and the correct answer must be one of them, written exactly as in "answer".

Example: if the user says "flashcards to teach me javascript", immediately call generateFlashcard with a JavaScript question and answer."""

STREAM_HEADERS = {
    "x-vercel-ai-ui-message-stream": "v1",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

GENERIC_STREAM_ERROR = "An error occurred while generating the response."


def sse(data: Any) -> str:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def merge_session_history(
    user_id: Optional[str], session_id: Optional[str], messages: List[UIMessage]
) -> List[UIMessage]:
    """
    Prepend stored history when the client only sent the newest message.

    `len(messages) <= 1` is how a continuation is recognized. A client that
    sends two new messages at once gets no history.
    """
    if not session_id or len(messages) > 1:
        return list(messages)

    try:
        session = get_learning_session(user_id, session_id)
    except Exception:
        logger.warning("Could not load history for session %s, using incoming messages only", session_id, exc_info=True)
        return list(messages)

    history = convert_chat_messages_to_ui_messages(session.messages)
    return history + list(messages) if messages else history


def prune_for_model(messages: Iterable[UIMessage]) -> List[UIMessage]:
    """Drop empty messages and completed tool results from assistant turns."""
    pruned: List[UIMessage] = []

    for msg in messages:
        if not msg.parts:
            continue
        if msg.role == "assistant":
            parts = [
                p for p in msg.parts
                if not (isinstance(p, ToolUIPart) and p.state == "output-available")
            ]
            if not parts:
                continue
            msg = msg.model_copy(update={"parts": parts})
        pruned.append(msg)

    return pruned


def run_tool_call(event: Dict[str, Any]) -> ToolUIPart:
    name = event["toolName"]
    args = event.get("input") or {}
    part = ToolUIPart.for_tool(name, tool_call_id=event["toolCallId"], state="input-available", input=args)

    tool = tools.get(name)
    if tool is None:
        logger.warning("Model called unknown tool %r", name)
        part.state = "output-error"
        part.error_text = f"Unknown tool: {name}"
        return part

    try:
        part.output = tool.execute(args)
        part.state = "output-available"
    except ToolError as e:
        logger.info("Tool %s rejected its input: %s", name, e)
        part.state = "output-error"
        part.error_text = str(e)
    return part


def _persist_transcript(user_id: str, session_id: str, messages: List[UIMessage]) -> None:
    try:
        result = update_session_messages(user_id, session_id, convert_ui_messages_to_chat_messages(messages))
    except Exception:
        logger.exception("Failed to save messages for session %s", session_id)
        return
    if not result["success"]:
        logger.error("Failed to save messages for session %s: %s", session_id, result.get("error"))


def _stream_turn(
    events: Iterator[Dict[str, Any]],
    history: List[UIMessage],
    user_id: Optional[str],
    session_id: Optional[str],
) -> Iterator[str]:
    response = UIMessage(id=_new_id("msg"), role="assistant", parts=[])
    text_part: Optional[TextUIPart] = None
    text_id = None

    yield sse({"type": "start", "messageId": response.id})

    try:
        for event in events:
            if event["type"] == "text":
                if text_part is None:
                    text_part = TextUIPart(text="")
                    text_id = _new_id("txt")
                    response.parts.append(text_part)
                    yield sse({"type": "text-start", "id": text_id})
                text_part.text += event["text"]
                yield sse({"type": "text-delta", "id": text_id, "delta": event["text"]})

            elif event["type"] == "tool-call":
                if text_part is not None:
                    yield sse({"type": "text-end", "id": text_id})
                    text_part = None

                part = run_tool_call(event)
                response.parts.append(part)
                yield sse({
                    "type": "tool-input-available",
                    "toolCallId": part.tool_call_id,
                    "toolName": part.tool_name,
                    "input": part.input,
                })
                if part.state == "output-available":
                    yield sse({"type": "tool-output-available", "toolCallId": part.tool_call_id, "output": part.output})
                else:
                    yield sse({"type": "tool-output-error", "toolCallId": part.tool_call_id, "errorText": part.error_text})

        if text_part is not None:
            yield sse({"type": "text-end", "id": text_id})
        yield sse({"type": "finish"})
    except Exception:
        logger.exception("Chat stream failed")
        yield sse({"type": "error", "errorText": GENERIC_STREAM_ERROR})
        yield "data: [DONE]\n\n"
        return

    yield "data: [DONE]\n\n"

    # runs once the client has read the whole stream
    if session_id:
        transcript = history + [response] if response.parts else history
        _persist_transcript(user_id, session_id, transcript)


def start_chat(chat_request: ChatRequest, user_id: Optional[str], client: InferenceClient) -> Iterator[str]:
    """Prepare the turn and open the model stream. Returns the SSE body."""
    session_id = chat_request.session_id
    merged = merge_session_history(user_id, session_id, chat_request.messages)
    model_messages = prune_for_model(merged)

    logger.info("Chat turn: session=%s incoming=%d merged=%d sent=%d",
                session_id, len(chat_request.messages), len(merged), len(model_messages))

    events = client.stream(model_messages, tools=list(tools.values()), system=SYSTEM_PROMPT)
    return _stream_turn(iter(events), merged, user_id, session_id)
