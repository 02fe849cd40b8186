"""Google Gemini adapter for the tutor chat."""
import os
import uuid
import logging
from collections.abc import Mapping, Sequence as SequenceABC
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence

import google.generativeai as genai

from schemas import TextUIPart, ToolUIPart, UIMessage
from tools import Tool

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


class InferenceError(RuntimeError):
    ...


class InferenceConfigError(InferenceError):
    ...


# ===== Port =====

class InferenceClient(Protocol):
    """
    Streams one model turn.

    Yields plain dict events:
      {"type": "text", "text": str}
      {"type": "tool-call", "toolCallId": str, "toolName": str, "input": dict}
    """
    def stream(
        self, messages: Sequence[UIMessage], *, tools: Sequence[Tool], system: str
    ) -> Iterator[Dict[str, Any]]:
        ...


# ===== Message mapping =====

def _to_plain(value: Any) -> Any:
    """proto-plus maps/repeated fields -> dict/list."""
    if isinstance(value, Mapping):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, SequenceABC) and not isinstance(value, (str, bytes)):
        return [_to_plain(v) for v in value]
    return value


def to_gemini_contents(messages: Iterable[UIMessage]) -> List[Dict[str, Any]]:
    contents: List[Dict[str, Any]] = []

    for msg in messages:
        parts: List[Dict[str, Any]] = []
        responses: List[Dict[str, Any]] = []

        for part in msg.parts:
            if isinstance(part, TextUIPart):
                if part.text:
                    parts.append({"text": part.text})
            elif isinstance(part, ToolUIPart):
                args = part.input if isinstance(part.input, dict) else {}
                parts.append({"function_call": {"name": part.tool_name, "args": args}})
                # every function_call needs a matching function_response
                if part.state == "output-available" and isinstance(part.output, dict):
                    response = part.output
                elif part.state == "output-error":
                    response = {"error": part.error_text or ""}
                else:
                    response = {"error": "no result"}
                responses.append({"function_response": {"name": part.tool_name, "response": response}})

        if not parts:
            continue

        contents.append({"role": "model" if msg.role == "assistant" else "user", "parts": parts})
        if responses:
            contents.append({"role": "user", "parts": responses})

    return contents


def _chunk_parts(chunk) -> List[Any]:
    parts: List[Any] = []
    for candidate in getattr(chunk, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        parts.extend(getattr(content, "parts", None) or [])
    return parts


def _events(response) -> Iterator[Dict[str, Any]]:
    for chunk in response:
        for part in _chunk_parts(chunk):
            fc = getattr(part, "function_call", None)
            if fc is not None and getattr(fc, "name", ""):
                yield {
                    "type": "tool-call",
                    # Gemini does not assign call ids
                    "toolCallId": f"call_{uuid.uuid4().hex}",
                    "toolName": fc.name,
                    "input": _to_plain(fc.args) or {},
                }
                continue
            text = getattr(part, "text", "") or ""
            if text:
                yield {"type": "text", "text": text}


# ===== Adapter =====

def _load_api_key() -> Optional[str]:
    api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    return api_key.strip() if api_key else None


class GeminiInferenceClient:
    """Adapter over google.generativeai GenerativeModel with function calling."""

    def __init__(self, model_name: Optional[str] = None, api_key: Optional[str] = None) -> None:
        self.model_name = model_name or os.getenv("GEMINI_MODEL") or DEFAULT_MODEL
        self.api_key = api_key or _load_api_key()
        if self.api_key:
            genai.configure(api_key=self.api_key)
        else:
            logger.warning("Gemini client created without API key. Set GEMINI_API_KEY or GOOGLE_API_KEY.")

    def stream(
        self, messages: Sequence[UIMessage], *, tools: Sequence[Tool], system: str
    ) -> Iterator[Dict[str, Any]]:
        if not self.api_key:
            raise InferenceConfigError("GEMINI_API_KEY missing")

        model = genai.GenerativeModel(
            model_name=self.model_name,
            tools=[{"function_declarations": [t.declaration() for t in tools]}],
            system_instruction=system,
        )
        contents = to_gemini_contents(messages)
        logger.debug("Streaming %d contents to %s", len(contents), self.model_name)

        # the request is issued here, so connection/auth errors surface before streaming
        response = model.generate_content(contents, stream=True)
        return _events(response)


_client: Optional[GeminiInferenceClient] = None


def get_inference_client() -> InferenceClient:
    """FastAPI dependency; one shared client per process."""
    global _client
    if _client is None:
        _client = GeminiInferenceClient()
    return _client
