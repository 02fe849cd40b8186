"""
Tools the tutor model may call.

Only one exists today: generateFlashcard. It validates the model's arguments
and hands them back as the flashcard payload. Nothing is written anywhere;
flashcards reach the session only through the chat transcript.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ValidationError

from schemas import ToolName

logger = logging.getLogger(__name__)

MULTIPLE_CHOICE_OPTIONS = 4


class ToolError(ValueError):
    """A tool call failed. Reported back in the stream, never retried."""


class FlashcardToolError(ToolError):
    """Raised when the model asks for a flashcard that cannot be built."""


class FlashcardArgs(BaseModel):
    type: Literal["basic", "multiple-choice"]
    question: str
    answer: str
    options: Optional[List[str]] = None
    explanation: Optional[str] = None


def generate_flashcard(args: Dict[str, Any]) -> Dict[str, Any]:
    try:
        card = FlashcardArgs.model_validate(args or {})
    except ValidationError as e:
        raise FlashcardToolError(f"Invalid flashcard arguments: {e}") from e

    result: Dict[str, Any] = {
        "type": card.type,
        "question": card.question,
        "answer": card.answer,
    }

    if card.type == "multiple-choice":
        if card.options is None or len(card.options) != MULTIPLE_CHOICE_OPTIONS:
            raise FlashcardToolError(
                f"Multiple-choice flashcards need exactly {MULTIPLE_CHOICE_OPTIONS} options"
            )
        if card.answer not in card.options:
            raise FlashcardToolError("The answer must be one of the options")
        result["options"] = list(card.options)

    if card.explanation is not None:
        result["explanation"] = card.explanation

    logger.debug("generateFlashcard executed: %s", result)
    return result


FLASHCARD_TOOL_DESCRIPTION = (
    "Generate a flashcard for the learner. This tool is the only way flashcard "
    "content reaches the learner: never write flashcards, quiz questions or "
    "answers as plain text, call this tool instead. Use type 'basic' for a "
    "question/answer card and 'multiple-choice' for a card with exactly 4 "
    "options, one of which is the exact answer."
)

FLASHCARD_PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "type": {
            "type": "string",
            "format": "enum",
            "enum": ["basic", "multiple-choice"],
            "description": "Kind of flashcard",
        },
        "question": {"type": "string", "description": "The question for the flashcard"},
        "answer": {"type": "string", "description": "The correct answer to the question"},
        "options": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Exactly 4 options including the correct answer (multiple-choice only)",
        },
        "explanation": {"type": "string", "description": "Optional explanation of the answer"},
    },
    "required": ["type", "question", "answer"],
}


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    parameters: Dict[str, Any]
    execute: Callable[[Dict[str, Any]], Dict[str, Any]]

    def declaration(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}


generate_flashcard_tool = Tool(
    name=ToolName.GENERATE_FLASHCARD.value,
    description=FLASHCARD_TOOL_DESCRIPTION,
    parameters=FLASHCARD_PARAMETERS,
    execute=generate_flashcard,
)

tools: Dict[str, Tool] = {
    generate_flashcard_tool.name: generate_flashcard_tool,
}
