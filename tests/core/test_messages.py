from __future__ import annotations

import pytest

from patchbay.core.context import StreamContext
from patchbay.core.errors import MessageShapeError
from patchbay.core.message import (
    AssistantMessage,
    ImageBlock,
    TextBlock,
    ToolCall,
    ToolResultMessage,
    UserMessage,
    coerce_message,
    message_to_dict,
    text_of,
)


def test_missing_role_raises_message_shape_error() -> None:
    with pytest.raises(MessageShapeError, match="missing a required string 'role'") as excinfo:
        coerce_message({"content": "hi"}, index=3)

    assert isinstance(excinfo.value, TypeError)
    assert "index 3" in str(excinfo.value)


def test_unknown_role_raises_message_shape_error() -> None:
    with pytest.raises(MessageShapeError, match="unsupported role 'system'"):
        coerce_message({"role": "system", "content": "be nice"})


def test_non_mapping_message_is_rejected() -> None:
    with pytest.raises(MessageShapeError):
        coerce_message("hello")  # type: ignore[arg-type]


def test_user_message_from_wire_blocks() -> None:
    message = coerce_message(
        {
            "role": "user",
            "content": [
                {"type": "text", "text": "What is this?"},
                {"type": "image", "data": "aGVsbG8=", "mimeType": "image/png"},
            ],
        }
    )

    assert isinstance(message, UserMessage)
    assert message.content == (
        TextBlock("What is this?"),
        ImageBlock(data="aGVsbG8=", mime_type="image/png"),
    )
    assert text_of(message.content) == "What is this?"


def test_assistant_message_with_tool_calls_round_trips_to_wire() -> None:
    message = coerce_message(
        {
            "role": "assistant",
            "content": "Let me check.",
            "toolCalls": [{"id": "call_1", "name": "lookup", "arguments": '{"q": "weather"}'}],
        }
    )

    assert isinstance(message, AssistantMessage)
    assert message.tool_calls == (ToolCall(id="call_1", name="lookup", arguments={"q": "weather"}),)
    assert message_to_dict(message) == {
        "role": "assistant",
        "content": "Let me check.",
        "toolCalls": [{"id": "call_1", "name": "lookup", "arguments": {"q": "weather"}}],
    }


def test_invalid_tool_call_arguments_are_reported_with_index() -> None:
    with pytest.raises(MessageShapeError, match="index 1 has an invalid tool call"):
        StreamContext(
            messages=(
                {"role": "user", "content": "hi"},
                {"role": "assistant", "toolCalls": [{"id": "c", "name": "x", "arguments": "[1, 2]"}]},
            )
        )


def test_tool_result_message_wire_shape() -> None:
    message = ToolResultMessage(
        tool_call_id="call_1",
        tool_name="lookup",
        content="sunny",
        is_error=False,
    )

    assert message.content == (TextBlock("sunny"),)
    assert message_to_dict(message) == {
        "role": "toolResult",
        "toolCallId": "call_1",
        "toolName": "lookup",
        "content": [{"type": "text", "text": "sunny"}],
        "isError": False,
    }
    assert coerce_message(message_to_dict(message)) == message


def test_tool_call_arguments_are_read_only() -> None:
    call = ToolCall(id="call_1", name="lookup", arguments={"nested": {"k": [1, 2]}})

    with pytest.raises(TypeError):
        call.arguments["extra"] = 1  # type: ignore[index]
    assert call.arguments["nested"]["k"] == (1, 2)
    assert call.to_dict() == {"id": "call_1", "name": "lookup", "arguments": {"nested": {"k": [1, 2]}}}


def test_tool_call_requires_identity() -> None:
    with pytest.raises(ValueError):
        ToolCall(id="", name="lookup", arguments={})
    with pytest.raises(ValueError):
        ToolCall(id="call_1", name="", arguments={})


def test_image_block_validates_mime_type() -> None:
    with pytest.raises(ValueError):
        ImageBlock(data="aGVsbG8=", mime_type="png")


def test_stream_context_from_dict_accepts_both_spellings() -> None:
    camel = StreamContext.from_dict(
        {
            "systemPrompt": "You are terse.",
            "messages": [{"role": "user", "content": "hi"}],
            "tools": [{"name": "lookup", "description": "Find things", "parameters": {"type": "object"}}],
        }
    )
    snake = StreamContext.from_dict({"system_prompt": "You are terse.", "messages": []})

    assert camel.system_prompt == snake.system_prompt == "You are terse."
    assert camel.messages == (UserMessage("hi"),)
    assert camel.tools[0].name == "lookup"
    assert camel.tools[0].input_schema == {"type": "object", "properties": {}}
    assert camel.to_dict() == {
        "messages": [{"role": "user", "content": "hi"}],
        "systemPrompt": "You are terse.",
        "tools": [
            {
                "name": "lookup",
                "description": "Find things",
                "input_schema": {"type": "object", "properties": {}},
            }
        ],
    }


def test_with_messages_appends_without_mutating() -> None:
    context = StreamContext(messages=(UserMessage("one"),))

    extended = context.with_messages(AssistantMessage("two"))

    assert len(context.messages) == 1
    assert [message.role.value for message in extended.messages] == ["user", "assistant"]


def test_stream_context_rejects_non_string_system_prompt() -> None:
    with pytest.raises(TypeError):
        StreamContext(system_prompt=42)  # type: ignore[arg-type]
