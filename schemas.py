"""
Database Schemas for the AI Tutor

A LearningSession is one document in the "learningSessions" collection. Chat
messages and the flashcards derived from them are embedded in it. Fields are
snake_case in Python and camelCase in MongoDB and over the wire.

The UI* models describe the transient, part-based messages exchanged with the
chat client while a conversation is streaming.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Persisted shapes

class ToolInvocation(CamelModel):
    tool_call_id: str
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    # None while the call is still in progress
    result: Optional[Dict[str, Any]] = None


class ChatMessage(CamelModel):
    id: str
    role: Literal["user", "assistant"]
    content: str = ""
    tool_invocations: Optional[List[ToolInvocation]] = None
    timestamp: datetime = Field(default_factory=utcnow)


class Flashcard(CamelModel):
    """Derived from a completed generateFlashcard call; never authored directly."""
    id: str = Field(..., description="toolCallId of the originating invocation")
    type: Literal["basic", "multiple-choice"]
    question: str
    answer: str
    options: Optional[List[str]] = None
    explanation: Optional[str] = None
    answered: bool = False


class LearningSession(CamelModel):
    """
    Study session aggregate
    Collection: "learningSessions"
    """
    id: str = Field(..., alias="_id")
    title: str
    subject: str
    description: Optional[str] = ""
    user_id: str
    messages: List[ChatMessage] = Field(default_factory=list)
    flashcards: List[Flashcard] = Field(default_factory=list)
    status: Literal["active", "completed"] = "active"
    created_at: datetime
    updated_at: datetime
    last_accessed_at: datetime


class CreateLearningSession(CamelModel):
    title: str = Field(..., min_length=1, max_length=200, description="Title is required")
    subject: str = Field(..., min_length=1, max_length=100, description="Subject is required")
    description: Optional[str] = Field(None, max_length=1000)


class UpdateSessionMessages(CamelModel):
    messages: List[ChatMessage]


# Transient (streaming) shapes

TOOL_PART_PREFIX = "tool-"

ToolState = Literal["input-streaming", "input-available", "output-available", "output-error"]


class ToolName(str, Enum):
    GENERATE_FLASHCARD = "generateFlashcard"
    UNKNOWN = "unknown"

    @classmethod
    def from_name(cls, name: str) -> "ToolName":
        try:
            return cls(name)
        except ValueError:
            return cls.UNKNOWN


class TextUIPart(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: Literal["text"] = "text"
    text: str = ""


class ToolUIPart(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: str
    tool_call_id: str
    state: ToolState = "input-available"
    input: Optional[Any] = None
    output: Optional[Any] = None
    error_text: Optional[str] = None

    @classmethod
    def for_tool(cls, tool_name: str, **kwargs) -> "ToolUIPart":
        return cls(type=f"{TOOL_PART_PREFIX}{tool_name}", **kwargs)

    @property
    def tool_name(self) -> str:
        return self.type.replace(TOOL_PART_PREFIX, "", 1)

    @property
    def tool(self) -> ToolName:
        return ToolName.from_name(self.tool_name)


class OtherUIPart(CamelModel):
    """Step markers, reasoning and anything else the converter does not interpret."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: str


def _part_tag(value: Any) -> str:
    part_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    if part_type == "text":
        return "text"
    if isinstance(part_type, str) and part_type.startswith(TOOL_PART_PREFIX):
        return "tool"
    return "other"


UIMessagePart = Annotated[
    Union[
        Annotated[TextUIPart, Tag("text")],
        Annotated[ToolUIPart, Tag("tool")],
        Annotated[OtherUIPart, Tag("other")],
    ],
    Discriminator(_part_tag),
]


class UIMessage(CamelModel):
    id: str
    role: Literal["user", "assistant"]
    parts: List[UIMessagePart] = Field(default_factory=list)


class ChatRequest(CamelModel):
    messages: List[UIMessage] = Field(default_factory=list)
    session_id: Optional[str] = None
