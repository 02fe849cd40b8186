from types import SimpleNamespace as NS
from unittest.mock import MagicMock, patch

import pytest

import llm
from llm import GeminiInferenceClient, InferenceConfigError, to_gemini_contents
from schemas import TextUIPart, ToolUIPart, UIMessage
from tools import tools

CARD = {"type": "basic", "question": "Q", "answer": "A"}


def _chunk(*parts):
    return NS(candidates=[NS(content=NS(parts=list(parts)))])


def _text(t):
    return NS(text=t, function_call=NS(name="", args={}))


def _call(name, args):
    return NS(text="", function_call=NS(name=name, args=args))


def test_contents_map_roles_and_tool_parts():
    messages = [
        UIMessage(id="u", role="user", parts=[TextUIPart(text="hi"), TextUIPart(text="")]),
        UIMessage(id="a", role="assistant", parts=[
            TextUIPart(text="card:"),
            ToolUIPart.for_tool("generateFlashcard", tool_call_id="c1", state="input-available", input=CARD),
        ]),
        UIMessage(id="empty", role="user", parts=[{"type": "step-start"}]),
    ]

    contents = to_gemini_contents(messages)

    assert contents == [
        {"role": "user", "parts": [{"text": "hi"}]},
        {"role": "model", "parts": [
            {"text": "card:"},
            {"function_call": {"name": "generateFlashcard", "args": CARD}},
        ]},
        {"role": "user", "parts": [
            {"function_response": {"name": "generateFlashcard", "response": {"error": "no result"}}},
        ]},
    ]


def test_contents_answer_every_unfinished_call():
    messages = [
        UIMessage(id="u", role="user", parts=[TextUIPart(text="two cards")]),
        UIMessage(id="a", role="assistant", parts=[
            ToolUIPart.for_tool("generateFlashcard", tool_call_id="c1", state="input-streaming", input={"type": "ba"}),
            ToolUIPart.for_tool("generateFlashcard", tool_call_id="c2", state="input-available", input=CARD),
        ]),
        UIMessage(id="u2", role="user", parts=[TextUIPart(text="again")]),
    ]

    contents = to_gemini_contents(messages)

    assert [c["role"] for c in contents] == ["user", "model", "user", "user"]
    calls = [p for p in contents[1]["parts"] if "function_call" in p]
    responses = contents[2]["parts"]
    assert len(calls) == len(responses) == 2
    assert all(r["function_response"]["response"] == {"error": "no result"} for r in responses)


def test_contents_add_function_responses_for_finished_calls():
    messages = [UIMessage(id="u", role="user", parts=[
        ToolUIPart.for_tool("generateFlashcard", tool_call_id="c1", state="output-available", input=CARD, output=CARD),
        ToolUIPart.for_tool("generateFlashcard", tool_call_id="c2", state="output-error", input={}, error_text="bad"),
    ])]

    _, responses = to_gemini_contents(messages)

    assert responses["role"] == "user"
    assert responses["parts"] == [
        {"function_response": {"name": "generateFlashcard", "response": CARD}},
        {"function_response": {"name": "generateFlashcard", "response": {"error": "bad"}}},
    ]


def test_stream_without_api_key_raises(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

    client = GeminiInferenceClient()

    with pytest.raises(InferenceConfigError):
        client.stream([], tools=list(tools.values()), system="s")


@patch("llm.genai")
def test_stream_turns_chunks_into_events(mock_genai):
    model = MagicMock()
    model.generate_content.return_value = [
        _chunk(_text("Hello")),
        _chunk(_call("generateFlashcard", {"type": "multiple-choice", "options": ("A", "B", "C", "D")})),
        NS(candidates=[]),
    ]
    mock_genai.GenerativeModel.return_value = model

    client = GeminiInferenceClient(model_name="gemini-test", api_key="k")
    events = list(client.stream(
        [UIMessage(id="u", role="user", parts=[TextUIPart(text="hi")])],
        tools=list(tools.values()),
        system="be a tutor",
    ))

    mock_genai.configure.assert_called_once_with(api_key="k")
    kwargs = mock_genai.GenerativeModel.call_args.kwargs
    assert kwargs["model_name"] == "gemini-test"
    assert kwargs["system_instruction"] == "be a tutor"
    assert kwargs["tools"][0]["function_declarations"][0]["name"] == "generateFlashcard"
    model.generate_content.assert_called_once_with([{"role": "user", "parts": [{"text": "hi"}]}], stream=True)

    assert events[0] == {"type": "text", "text": "Hello"}
    assert events[1]["type"] == "tool-call"
    assert events[1]["toolName"] == "generateFlashcard"
    assert events[1]["toolCallId"].startswith("call_")
    assert events[1]["input"] == {"type": "multiple-choice", "options": ["A", "B", "C", "D"]}
    assert len(events) == 2


def test_get_inference_client_is_shared(monkeypatch):
    monkeypatch.setattr(llm, "_client", None)
    monkeypatch.setenv("GEMINI_API_KEY", "k")
    with patch("llm.genai"):
        assert llm.get_inference_client() is llm.get_inference_client()
