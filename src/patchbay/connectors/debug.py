"""Deterministic connector for tests and local development.

Every model answers from the request alone, without credentials or network
access, so event sequences are reproducible.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
import json
import math

from ..core.context import StreamContext
from ..core.message import AssistantMessage, ToolCall, ToolResultMessage, UserMessage, message_to_dict, text_of
from ..core.model import ModelCost, ModelDescriptor
from ..core.stream import (
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
    ToolCallStart,
    Usage,
)
from ..naming import builtin_connector_id
from .base import Connector, StreamOptions

DEBUG_PROVIDER = "patchbay-debug"
DEBUG_API = "patchbay-debug"
DEBUG_BASE_URL = "local://patchbay-debug"

CANNED_RESPONSES = (
    "I understand your request. Let me help you with that.",
    "That's a great question. Based on my analysis, here's what I think.",
    "I've processed your input and here's my response.",
    "Thank you for the information. Here's what I can tell you.",
    "I'm working on your request. Here are my findings.",
)

THINKING_STEPS = (
    "Let me analyze this request carefully...\n",
    "Breaking down the key components:\n",
    "1. Understanding the user's intent\n",
    "2. Considering relevant context\n",
    "3. Formulating a structured response\n",
    "\nI should address the main points clearly and provide actionable information.\n",
)

NO_MESSAGE = "(no message)"


def _model(model_id: str, name: str, *, reasoning: bool = False) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        name=name,
        api=DEBUG_API,
        provider=DEBUG_PROVIDER,
        base_url=DEBUG_BASE_URL,
        reasoning=reasoning,
        input=("text",),
        cost=ModelCost(input=0, output=0, cache_read=0, cache_write=0),
        context_window=100_000,
        max_tokens=16_000,
    )


DEBUG_MODELS = (
    _model("dummy-echo-1", "Dummy Echo"),
    _model("sys-echo-1", "System Prompt Mirror"),
    _model("parrot-1", "Parrot (Verbatim Echo)"),
    _model("silent-1", "Silent (No Reply)"),
    _model("upper-parrot-1", "Uppercase Parrot"),
    _model("tagged-parrot-1", "Tagged Parrot (Relay)"),
    _model("inspect-echo-1", "Inspect Echo"),
    _model("thinking-stream-1", "Thinking Stream", reasoning=True),
    _model("tool-call-1", "Tool Caller"),
    _model("refusal-1", "Refusal (No Content)"),
    _model("error-1", "Failing Provider"),
)


def last_user_text(context: StreamContext) -> str:
    """Return the text of the most recent user turn, or ``"(no message)"``."""

    for message in reversed(context.messages):
        if isinstance(message, UserMessage):
            return text_of(message.content)
    return NO_MESSAGE


def estimate_tokens(text_length: int) -> int:
    """Rough token count: four characters per token, rounded up."""

    return math.ceil(text_length / 4)


def rough_input_tokens(context: StreamContext) -> int:
    history = json.dumps(
        [message_to_dict(message) for message in context.messages],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return estimate_tokens(len(context.system_prompt or "") + len(history))


def string_hash(text: str) -> int:
    """32-bit signed ``h * 31 + c`` hash over UTF-16 code units."""

    value = 0
    units = text.encode("utf-16-le")
    for offset in range(0, len(units), 2):
        code = units[offset] | (units[offset + 1] << 8)
        value = (value * 31 + code) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def canned_reply(user_text: str) -> str:
    index = abs(string_hash(user_text)) % len(CANNED_RESPONSES)
    return f'{CANNED_RESPONSES[index]}\n\nYou said: "{user_text}"'


async def text_response(text: str, input_tokens: int) -> AsyncIterator[StreamEvent]:
    yield StartEvent()
    yield TextDelta(delta=text)
    yield TextEnd(content=text)
    yield DoneEvent(
        stop_reason=StopReason.STOP,
        usage=Usage(input_tokens=input_tokens, output_tokens=estimate_tokens(len(text))),
    )


async def thinking_response(context: StreamContext, input_tokens: int) -> AsyncIterator[StreamEvent]:
    user_text = last_user_text(context)
    if context.system_prompt:
        instructions = f'"{context.system_prompt[:80]}..."'
    else:
        instructions = "(none)"

    thinking_parts = [
        *THINKING_STEPS,
        f'The user asked: "{user_text}"\n',
        f"My system instructions say: {instructions}\n",
    ]
    answer_parts = [
        "Based on my analysis, here is my response.\n\n",
        f'You said: "{user_text}"\n\n',
        "I've considered this carefully and here are my thoughts.",
    ]
    thinking = "".join(thinking_parts)
    answer = "".join(answer_parts)

    yield StartEvent()
    for part in thinking_parts:
        yield ThinkingDelta(delta=part)
    yield ThinkingEnd(content=thinking)
    for part in answer_parts:
        yield TextDelta(delta=part)
    yield TextEnd(content=answer)
    yield DoneEvent(
        stop_reason=StopReason.STOP,
        usage=Usage(input_tokens=input_tokens, output_tokens=estimate_tokens(len(thinking) + len(answer))),
    )


async def tool_call_response(context: StreamContext, input_tokens: int) -> AsyncIterator[StreamEvent]:
    """Call the first available tool, or summarize the tool result just received."""

    latest = context.messages[-1] if context.messages else None
    if isinstance(latest, ToolResultMessage):
        status = "failed" if latest.is_error else "returned"
        summary = f"Tool {latest.tool_name} {status}: {text_of(latest.content)}"
        async for event in text_response(summary, input_tokens):
            yield event
        return

    if not context.tools:
        async for event in text_response("(no tools available)", input_tokens):
            yield event
        return

    tool = context.tools[0]
    calls_so_far = sum(
        len(message.tool_calls or ())
        for message in context.messages
        if isinstance(message, AssistantMessage)
    )
    call_id = f"call_debug_{calls_so_far + 1}"
    arguments = json.dumps({"input": last_user_text(context)})
    split = len(arguments) // 2

    yield StartEvent()
    yield ToolCallStart(id=call_id)
    yield ToolCallDelta(delta=arguments[:split], id=call_id)
    yield ToolCallDelta(delta=arguments[split:], id=call_id)
    yield ToolCallEnd(tool_call=ToolCall(id=call_id, name=tool.name, arguments=json.loads(arguments)))
    yield DoneEvent(
        stop_reason=StopReason.TOOL_USE,
        usage=Usage(input_tokens=input_tokens, output_tokens=estimate_tokens(len(arguments))),
    )


async def refusal_response() -> AsyncIterator[StreamEvent]:
    yield StartEvent()
    yield DoneEvent(stop_reason=StopReason.ERROR)


async def error_response() -> AsyncIterator[StreamEvent]:
    yield StartEvent()
    yield TextDelta(delta="Partial answer")
    yield ErrorEvent(error="simulated provider failure")


def stream_debug(
    model: ModelDescriptor,
    context: StreamContext,
    options: StreamOptions,
) -> AsyncIterator[StreamEvent]:
    input_tokens = rough_input_tokens(context)
    user_text = last_user_text(context)

    if model.id == "sys-echo-1":
        system_prompt = context.system_prompt.strip() if context.system_prompt is not None else "(no system prompt)"
        if context.tools:
            tools_section = "\n".join(f"  • {tool.name} — {tool.description}" for tool in context.tools)
        else:
            tools_section = "(no tools assigned)"
        text = (
            f"[sys-echo] My system prompt is:\n\n{system_prompt}"
            f"\n[sys-echo] My available tools ({len(context.tools)}):\n\n{tools_section}"
        )
        return text_response(text, input_tokens)
    if model.id == "parrot-1":
        return text_response(user_text, input_tokens)
    if model.id == "silent-1":
        return text_response("(silent)", 0)
    if model.id == "upper-parrot-1":
        return text_response(user_text.upper(), input_tokens)
    if model.id == "tagged-parrot-1":
        return text_response(f"[relay] {user_text}", input_tokens)
    if model.id == "inspect-echo-1":
        tool_names = ", ".join(tool.name for tool in context.tools) or "(none)"
        lines = [
            f"[inspect] messages: {len(context.messages)}",
            f"[inspect] last_user: {user_text}",
            f"[inspect] tools: {tool_names}",
            f"[inspect] has_system_prompt: {'yes' if context.system_prompt else 'no'}",
        ]
        return text_response("\n".join(lines), input_tokens)
    if model.id == "thinking-stream-1":
        return thinking_response(context, input_tokens)
    if model.id == "tool-call-1":
        return tool_call_response(context, input_tokens)
    if model.id == "refusal-1":
        return refusal_response()
    if model.id == "error-1":
        return error_response()

    # dummy-echo-1 and any unknown id
    return text_response(canned_reply(user_text), input_tokens)


def debug_connector() -> Connector:
    """Return the deterministic debug connector."""

    return Connector(
        id=builtin_connector_id(DEBUG_PROVIDER),
        label="Patchbay Debug Providers",
        provider=DEBUG_PROVIDER,
        api=DEBUG_API,
        models=DEBUG_MODELS,
        env_vars=(),
        stream_fn=stream_debug,
        requires_auth=False,
    )
