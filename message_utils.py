"""
Conversion between persisted ChatMessages and transient UI messages.

Persisted messages keep text in `content` and tool calls in `toolInvocations`.
UI messages are a flat list of parts: text parts and `tool-<name>` parts that
carry a state. Both functions are pure.

Going UI -> persisted stamps every message with the conversion time, so
original per-message timestamps do not survive a round trip.
"""
from typing import Any, Dict, List

from schemas import (
    ChatMessage,
    TextUIPart,
    ToolInvocation,
    ToolUIPart,
    UIMessage,
    UIMessagePart,
    utcnow,
)

# Fields read back out of a tool output when the call's input was lost
RECONSTRUCTED_ARG_FIELDS = ("type", "question", "answer", "options", "explanation")


def convert_chat_messages_to_ui_messages(chat_messages: List[ChatMessage]) -> List[UIMessage]:
    ui_messages: List[UIMessage] = []

    for msg in chat_messages:
        parts: List[UIMessagePart] = []

        if msg.content:
            parts.append(TextUIPart(text=msg.content))

        for tool in msg.tool_invocations or []:
            if tool.result is not None:
                parts.append(ToolUIPart.for_tool(
                    tool.tool_name,
                    tool_call_id=tool.tool_call_id,
                    state="output-available",
                    input=tool.args,
                    output=tool.result,
                ))
            else:
                parts.append(ToolUIPart.for_tool(
                    tool.tool_name,
                    tool_call_id=tool.tool_call_id,
                    state="input-available",
                    input=tool.args,
                ))

        # nothing to show, drop it
        if not parts:
            continue

        ui_messages.append(UIMessage(id=msg.id, role=msg.role, parts=parts))

    return ui_messages


def _tool_args(part: ToolUIPart) -> Dict[str, Any]:
    args: Dict[str, Any] = part.input if isinstance(part.input, dict) else {}

    completed = part.state == "output-available" and isinstance(part.output, dict)
    if completed and not args:
        output = part.output
        if output.get("type") and output.get("question") and output.get("answer"):
            args = {field: output.get(field) for field in RECONSTRUCTED_ARG_FIELDS}

    return args


def _tool_invocation(part: ToolUIPart) -> ToolInvocation:
    result = None
    if part.state == "output-available" and isinstance(part.output, dict):
        result = part.output

    return ToolInvocation(
        tool_call_id=part.tool_call_id,
        tool_name=part.tool_name,
        args=_tool_args(part),
        result=result,
    )


def convert_ui_messages_to_chat_messages(ui_messages: List[UIMessage]) -> List[ChatMessage]:
    chat_messages: List[ChatMessage] = []

    for msg in ui_messages:
        content = "".join(p.text for p in msg.parts if isinstance(p, TextUIPart))
        tool_invocations = [_tool_invocation(p) for p in msg.parts if isinstance(p, ToolUIPart)]

        chat_messages.append(ChatMessage(
            id=msg.id,
            role=msg.role,
            content=content,
            tool_invocations=tool_invocations or None,
            timestamp=utcnow(),
        ))

    return chat_messages
