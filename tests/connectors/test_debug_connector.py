from __future__ import annotations

import json
from typing import List

import pytest

from patchbay.auth import NoAuth, require_auth
from patchbay.connectors.debug import (
    CANNED_RESPONSES,
    DEBUG_API,
    DEBUG_MODELS,
    canned_reply,
    debug_connector,
    string_hash,
)
from patchbay.core.message import AssistantMessage, ToolCall
from patchbay.core.stream import (
    DoneEvent,
    ErrorEvent,
    StartEvent,
    StopReason,
    StreamEvent,
    TextDelta,
    TextEnd,
    ThinkingDelta,
    ThinkingEnd,
    ToolCallDelta,
    ToolCallEnd,
)
from patchbay.core.toolbridge import ToolSchema
from patchbay.tools import tool_result_message
from tests.harness import collect, event_types

SEARCH = ToolSchema(
    name="search",
    description="Search web",
    input_schema={"type": "object", "properties": {"input": {"type": "string"}}},
)


@pytest.fixture
def connector():
    return debug_connector()


def _text(events: List[StreamEvent]) -> str:
    return "".join(event.delta for event in events if isinstance(event, TextDelta))


def _thinking(events: List[StreamEvent]) -> str:
    return "".join(event.delta for event in events if isinstance(event, ThinkingDelta))


def test_text_only_call_emits_the_minimal_sequence(connector) -> None:
    events = collect(connector, "parrot-1", prompt="hello")

    assert event_types(events) == ["start", "text_delta", "text_end", "done"]
    assert events[1] == TextDelta("hello")
    assert events[2] == TextEnd("hello")
    done = events[-1]
    assert isinstance(done, DoneEvent)
    assert done.stop_reason is StopReason.STOP
    assert done.usage is not None
    assert done.usage.input_tokens > 0
    assert done.usage.output_tokens == 2


@pytest.mark.parametrize(
    ("model_id", "expected"),
    [
        ("parrot-1", "Hello There"),
        ("upper-parrot-1", "HELLO THERE"),
        ("tagged-parrot-1", "[relay] Hello There"),
        ("silent-1", "(silent)"),
    ],
)
def test_echo_models(connector, model_id: str, expected: str) -> None:
    events = collect(connector, model_id, prompt="Hello There")

    assert _text(events) == expected


def test_silent_model_reports_zero_input_tokens(connector) -> None:
    events = collect(connector, "silent-1", prompt="anything")

    assert events[-1].usage.input_tokens == 0


def test_parrot_without_user_message(connector) -> None:
    events = collect(connector, "parrot-1", messages=[])

    assert _text(events) == "(no message)"


def test_dummy_echo_reply_is_deterministic(connector) -> None:
    first = _text(collect(connector, "dummy-echo-1", prompt="hello"))
    second = _text(collect(connector, "dummy-echo-1", prompt="hello"))

    assert first == second == f'{CANNED_RESPONSES[2]}\n\nYou said: "hello"'


def test_string_hash_matches_utf16_code_unit_hash() -> None:
    assert string_hash("hello") == 99162322
    assert string_hash("") == 0
    assert string_hash("\U0001F600") == 1772899
    assert canned_reply("hello").startswith("I've processed your input")


def test_sys_echo_mirrors_system_prompt_and_tools(connector) -> None:
    events = collect(
        connector,
        "sys-echo-1",
        prompt="hi",
        system_prompt="  You are a test bot.  ",
        tools=[SEARCH],
    )

    assert _text(events) == (
        "[sys-echo] My system prompt is:\n\nYou are a test bot."
        "\n[sys-echo] My available tools (1):\n\n  • search — Search web"
    )


def test_sys_echo_without_prompt_or_tools(connector) -> None:
    text = _text(collect(connector, "sys-echo-1", prompt="hi"))

    assert "(no system prompt)" in text
    assert "My available tools (0):\n\n(no tools assigned)" in text


def test_inspect_echo_reports_the_request(connector) -> None:
    text = _text(collect(connector, "inspect-echo-1", prompt="hello"))

    assert text.splitlines() == [
        "[inspect] messages: 1",
        "[inspect] last_user: hello",
        "[inspect] tools: (none)",
        "[inspect] has_system_prompt: no",
    ]


def test_thinking_stream_precedes_text_and_matches_end_content(connector) -> None:
    events = collect(connector, "thinking-stream-1", prompt="Why?", system_prompt="Be kind.")

    types = event_types(events)
    assert types.index("thinking_delta") < types.index("text_delta")
    thinking_end = next(event for event in events if isinstance(event, ThinkingEnd))
    text_end = next(event for event in events if isinstance(event, TextEnd))
    assert thinking_end.content == _thinking(events)
    assert text_end.content == _text(events)
    assert 'The user asked: "Why?"' in thinking_end.content
    assert 'My system instructions say: "Be kind...."' in thinking_end.content


def test_tool_call_round_trip(connector) -> None:
    first = collect(connector, "tool-call-1", prompt="find cats", tools=[SEARCH])

    assert event_types(first) == [
        "start",
        "toolcall_start",
        "toolcall_delta",
        "toolcall_delta",
        "toolcall_end",
        "done",
    ]
    deltas = [event for event in first if isinstance(event, ToolCallDelta)]
    assert {event.id for event in deltas} == {"call_debug_1"}
    assert "".join(event.delta for event in deltas) == json.dumps({"input": "find cats"})
    end = first[4]
    assert isinstance(end, ToolCallEnd)
    call = end.tool_call
    assert call == ToolCall(id="call_debug_1", name="search", arguments={"input": "find cats"})
    assert first[-1].stop_reason is StopReason.TOOL_USE

    second = collect(
        connector,
        "tool-call-1",
        messages=[
            {"role": "user", "content": "find cats"},
            AssistantMessage(content=None, tool_calls=(call,)),
            tool_result_message(call, "3 cats"),
        ],
        tools=[SEARCH],
    )

    assert _text(second) == "Tool search returned: 3 cats"
    assert second[-1].stop_reason is StopReason.STOP


def test_tool_call_ids_count_earlier_calls(connector) -> None:
    earlier = ToolCall(id="call_debug_1", name="search", arguments={"input": "a"})
    events = collect(
        connector,
        "tool-call-1",
        messages=[
            {"role": "user", "content": "a"},
            AssistantMessage(content=None, tool_calls=(earlier,)),
            tool_result_message(earlier, "nothing", is_error=True),
            {"role": "user", "content": "b"},
        ],
        tools=[SEARCH],
    )

    assert events[1].id == "call_debug_2"


def test_failed_tool_result_is_summarized(connector) -> None:
    call = ToolCall(id="call_debug_1", name="search", arguments={})
    events = collect(
        connector,
        "tool-call-1",
        messages=[AssistantMessage(content=None, tool_calls=(call,)), tool_result_message(call, "boom", is_error=True)],
        tools=[SEARCH],
    )

    assert _text(events) == "Tool search failed: boom"


def test_tool_call_model_without_tools(connector) -> None:
    assert _text(collect(connector, "tool-call-1", prompt="hi")) == "(no tools available)"


def test_refusal_model_finishes_with_error_stop_reason(connector) -> None:
    events = collect(connector, "refusal-1", prompt="hi")

    assert events == [StartEvent(), DoneEvent(StopReason.ERROR)]


def test_error_model_fails_after_start(connector) -> None:
    events = collect(connector, "error-1", prompt="hi")

    assert events == [
        StartEvent(),
        TextDelta("Partial answer"),
        ErrorEvent("simulated provider failure"),
    ]


def test_catalog(connector) -> None:
    ids = [model.id for model in connector.models]

    assert connector.id == "builtin/patchbay-debug"
    assert connector.label == "Patchbay Debug Providers"
    assert connector.models == DEBUG_MODELS
    assert len(ids) == len(set(ids)) == 11
    assert all(model.api == DEBUG_API for model in connector.models)
    assert [model.id for model in connector.models if model.reasoning] == ["thinking-stream-1"]
    assert all(model.context_window == 100_000 for model in connector.models)


def test_debug_connector_needs_no_credentials(connector) -> None:
    assert not connector.requires_auth
    assert isinstance(require_auth(connector), NoAuth)
