"""OpenAI chat-completions connector with streaming normalization."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
import inspect
import logging
from typing import Any

from ..auth import candidate_env_vars, resolve_auth
from ..core.context import StreamContext
from ..core.errors import AdapterError, CredentialNotFoundError
from ..core.message import (
    AssistantMessage,
    ContentBlock,
    ImageBlock,
    Message,
    TextBlock,
    ToolCall,
    ToolResultMessage,
    UserMessage,
    text_of,
)
from ..core.model import ModelDescriptor
from ..core.stream import (
    DoneEvent,
    SourceStream,
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
from ..core.toolbridge import tool_call_to_openai, tool_schemas_to_openai
from ..core.utils import ensure_mapping, parse_json_object
from ..naming import builtin_connector_id
from .base import Connector, StreamOptions

LOGGER = logging.getLogger(__name__)

OPENAI_API = "openai-completions"

ClientFactory = Callable[..., Any]

_FINISH_REASONS: dict[str, StopReason] = {
    "stop": StopReason.STOP,
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "length": StopReason.LENGTH,
    "content_filter": StopReason.ERROR,
}


def create_openai_stream(client: Any, payload: Mapping[str, Any]) -> Any:
    """Create a streaming iterator using the provided OpenAI client."""

    return client.chat.completions.create(**payload)


def messages_to_openai(context: StreamContext) -> list[dict[str, Any]]:
    """Convert a stream context into the OpenAI Chat API ``messages`` list."""

    converted: list[dict[str, Any]] = []
    if context.system_prompt:
        converted.append({"role": "system", "content": context.system_prompt})
    for message in context.messages:
        converted.append(_message_to_openai(message))
    return converted


def _message_to_openai(message: Message) -> dict[str, Any]:
    if isinstance(message, UserMessage):
        return {"role": "user", "content": _content_to_openai(message.content)}

    if isinstance(message, AssistantMessage):
        payload: dict[str, Any] = {
            "role": "assistant",
            "content": None if message.content is None else text_of(message.content),
        }
        if message.tool_calls:
            payload["tool_calls"] = [tool_call_to_openai(call) for call in message.tool_calls]
        return payload

    if isinstance(message, ToolResultMessage):
        return {
            "role": "tool",
            "tool_call_id": message.tool_call_id,
            "content": "".join(block.text for block in message.content if isinstance(block, TextBlock)),
        }

    msg = f"unsupported message type: {type(message).__name__}"
    raise AdapterError(msg)


def _content_to_openai(content: str | tuple[ContentBlock, ...]) -> str | list[dict[str, Any]]:
    if isinstance(content, str):
        return content

    parts: list[dict[str, Any]] = []
    for block in content:
        if isinstance(block, ImageBlock):
            parts.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{block.mime_type};base64,{block.data}"},
                }
            )
        else:
            parts.append({"type": "text", "text": block.text})
    return parts


def build_payload(
    model: ModelDescriptor,
    context: StreamContext,
    options: StreamOptions,
) -> dict[str, Any]:
    """Return the ``chat.completions.create`` keyword arguments for one call."""

    payload: dict[str, Any] = {
        "model": model.id,
        "messages": messages_to_openai(context),
        "stream": True,
        "stream_options": {"include_usage": True},
    }
    if options.temperature is not None:
        payload["temperature"] = options.temperature
    if options.max_tokens is not None:
        payload["max_tokens"] = options.max_tokens
    if context.tools:
        payload["tools"] = tool_schemas_to_openai(context.tools)
    return payload


async def _open_stream(client: Any, payload: Mapping[str, Any]) -> Any:
    stream = create_openai_stream(client, payload)
    if inspect.isawaitable(stream):
        stream = await stream
    return stream


@dataclass
class _ToolCallState:
    """Track incremental metadata for a streaming tool call."""

    call_id: str | None = None
    name: str | None = None
    fragments: list[str] = field(default_factory=list)

    def update_from_payload(self, payload: Mapping[str, Any], *, index: int) -> None:
        call_id = payload.get("id")
        if call_id is not None:
            if not isinstance(call_id, str) or not call_id:
                msg = f"tool call at index {index} is missing a valid id"
                raise AdapterError(msg)
            self.call_id = call_id

        call_type = payload.get("type")
        if call_type is not None and call_type != "function":
            msg = f"tool call at index {index} must have type 'function'"
            raise AdapterError(msg)

        function_payload = payload.get("function")
        if function_payload is None:
            return
        if not isinstance(function_payload, Mapping):
            msg = f"tool call at index {index} must include a mapping 'function' payload"
            raise AdapterError(msg)

        name_value = function_payload.get("name")
        if name_value is not None:
            if not isinstance(name_value, str) or not name_value:
                msg = f"tool call at index {index} is missing a valid function name"
                raise AdapterError(msg)
            self.name = name_value

    def extract_arguments(self, payload: Mapping[str, Any], *, index: int) -> str | None:
        function_payload = payload.get("function")
        if function_payload is None:
            return None

        fragment = function_payload.get("arguments")
        if fragment is None:
            return None
        if not isinstance(fragment, str):
            msg = f"tool call at index {index} arguments must be a string fragment"
            raise AdapterError(msg)
        if not fragment:
            return None
        self.fragments.append(fragment)
        return fragment

    def resolve(self, *, index: int) -> ToolCall:
        if self.call_id is None:
            msg = f"tool call at index {index} finished without an id"
            raise AdapterError(msg)
        if self.name is None:
            msg = f"tool call at index {index} finished without a function name"
            raise AdapterError(msg)
        arguments = parse_json_object("".join(self.fragments), path=f"tool call '{self.name}' arguments")
        return ToolCall(id=self.call_id, name=self.name, arguments=arguments)


class OpenAIChunkNormalizer:
    """Normalize OpenAI chat completion chunks into canonical events.

    A ``start`` event precedes the first chunk's events. Text, reasoning and
    tool-call blocks are closed when a different kind of block begins or when
    ``finish_reason`` arrives. ``done`` follows the usage chunk, or the end of
    the source when the server sends no usage.
    """

    def __init__(self) -> None:
        self._started = False
        self._text_fragments: list[str] = []
        self._thinking_fragments: list[str] = []
        self._tool_states: dict[int, _ToolCallState] = {}
        self._stop_reason: StopReason | None = None
        self._usage: Usage | None = None
        self._done_emitted = False

    async def normalize_chunk(self, chunk: Any) -> list[StreamEvent]:
        mapping = ensure_mapping(chunk, path="chunk")
        events: list[StreamEvent] = []
        if not self._started:
            self._started = True
            events.append(StartEvent())
        if self._done_emitted:
            return events

        usage = self._extract_usage(mapping)
        if usage is not None:
            self._usage = usage

        choice = self._extract_choice(mapping)
        if choice is not None:
            delta = self._extract_delta(choice)
            events.extend(self._normalize_delta(delta))

            finish_reason = self._extract_finish_reason(choice)
            if finish_reason is not None:
                events.extend(self._close_blocks())
                events.extend(self._close_tool_calls())
                self._stop_reason = self._map_finish_reason(finish_reason)

        if self._stop_reason is not None and self._usage is not None:
            events.append(self._done(self._stop_reason))
        return events

    async def finalize(self) -> list[StreamEvent]:
        """Emit ``done`` when the stream ended without a usage chunk."""

        if self._done_emitted or not self._started:
            return []
        if self._stop_reason is None:
            msg = "OpenAI stream ended without a finish_reason"
            raise AdapterError(msg)
        return [self._done(self._stop_reason)]

    def _done(self, stop_reason: StopReason) -> DoneEvent:
        self._done_emitted = True
        return DoneEvent(stop_reason=stop_reason, usage=self._usage)

    def _normalize_delta(self, delta: Mapping[str, Any]) -> list[StreamEvent]:
        events: list[StreamEvent] = []

        reasoning_fragment = delta.get("reasoning_content")
        if reasoning_fragment is not None:
            if not isinstance(reasoning_fragment, str):
                msg = "OpenAI delta reasoning_content fragments must be strings"
                raise AdapterError(msg)
            if reasoning_fragment:
                events.extend(self._close_text())
                self._thinking_fragments.append(reasoning_fragment)
                events.append(ThinkingDelta(delta=reasoning_fragment))

        content_fragment = delta.get("content")
        if content_fragment is not None:
            if not isinstance(content_fragment, str):
                msg = "OpenAI delta content fragments must be strings"
                raise AdapterError(msg)
            if content_fragment:
                events.extend(self._close_thinking())
                self._text_fragments.append(content_fragment)
                events.append(TextDelta(delta=content_fragment))

        tool_calls_payload = delta.get("tool_calls")
        if tool_calls_payload is not None:
            events.extend(self._close_blocks())
            events.extend(self._normalize_tool_calls(tool_calls_payload))

        return events

    def _normalize_tool_calls(self, payload: Any) -> list[StreamEvent]:
        if isinstance(payload, (str, bytes)) or not isinstance(payload, Sequence):
            msg = "OpenAI delta tool_calls payload must be a sequence"
            raise AdapterError(msg)

        events: list[StreamEvent] = []
        for position, item in enumerate(payload):
            mapping = ensure_mapping(item, path=f"choices[0].delta.tool_calls[{position}]")

            raw_index = mapping.get("index")
            if isinstance(raw_index, bool) or not isinstance(raw_index, int):
                msg = f"tool call delta missing integer index at position {position}"
                raise AdapterError(msg)

            state = self._tool_states.get(raw_index)
            if state is None:
                state = _ToolCallState()
                self._tool_states[raw_index] = state
                state.update_from_payload(mapping, index=raw_index)
                events.append(ToolCallStart(id=state.call_id))
            else:
                state.update_from_payload(mapping, index=raw_index)

            fragment = state.extract_arguments(mapping, index=raw_index)
            if fragment is not None:
                events.append(ToolCallDelta(delta=fragment, id=state.call_id))

        return events

    def _close_text(self) -> list[StreamEvent]:
        if not self._text_fragments:
            return []
        content = "".join(self._text_fragments)
        self._text_fragments = []
        return [TextEnd(content=content)]

    def _close_thinking(self) -> list[StreamEvent]:
        if not self._thinking_fragments:
            return []
        content = "".join(self._thinking_fragments)
        self._thinking_fragments = []
        return [ThinkingEnd(content=content)]

    def _close_blocks(self) -> list[StreamEvent]:
        return [*self._close_thinking(), *self._close_text()]

    def _close_tool_calls(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for index in sorted(self._tool_states):
            tool_call = self._tool_states[index].resolve(index=index)
            events.append(ToolCallEnd(tool_call=tool_call))
        self._tool_states.clear()
        return events

    def _map_finish_reason(self, finish_reason: str) -> StopReason:
        mapped = _FINISH_REASONS.get(finish_reason)
        if mapped is None:
            LOGGER.warning("unknown OpenAI finish_reason %r; treating as error", finish_reason)
            return StopReason.ERROR
        return mapped

    def _extract_usage(self, chunk: Mapping[str, Any]) -> Usage | None:
        usage_payload = chunk.get("usage")
        if usage_payload is None:
            return None
        usage = ensure_mapping(usage_payload, path="usage")
        counts: list[int] = []
        for key in ("prompt_tokens", "completion_tokens"):
            value = usage.get(key, 0)
            if isinstance(value, bool) or not isinstance(value, int):
                msg = f"usage.{key} must be an integer when provided"
                raise AdapterError(msg)
            if value < 0:
                msg = f"usage.{key} cannot be negative"
                raise AdapterError(msg)
            counts.append(value)
        return Usage(input_tokens=counts[0], output_tokens=counts[1])

    def _extract_choice(self, chunk: Mapping[str, Any]) -> Mapping[str, Any] | None:
        choices = chunk.get("choices")
        if choices is None:
            return None
        if not isinstance(choices, Sequence):
            msg = "OpenAI stream chunk choices must be a sequence"
            raise AdapterError(msg)
        if not choices:
            return None
        return ensure_mapping(choices[0], path="choices[0]")

    def _extract_finish_reason(self, choice: Mapping[str, Any]) -> str | None:
        finish_reason = choice.get("finish_reason")
        if finish_reason is None:
            return None
        if not isinstance(finish_reason, str):
            msg = "OpenAI finish_reason must be a string when present"
            raise AdapterError(msg)
        return finish_reason

    def _extract_delta(self, choice: Mapping[str, Any]) -> Mapping[str, Any]:
        delta = choice.get("delta")
        if delta is None:
            return {}
        return ensure_mapping(delta, path="choices[0].delta")


def build_openai_connector(
    client_factory: ClientFactory,
    *,
    models: Sequence[ModelDescriptor] = (),
    connector_id: str | None = None,
    provider: str = "openai",
    label: str = "OpenAI",
    api: str = OPENAI_API,
    env_vars: Sequence[str] = ("OPENAI_API_KEY",),
) -> Connector:
    """Build a connector over an OpenAI-compatible chat completions client.

    ``client_factory(api_key=..., model=...)`` is called once per call with
    the resolved key and the model descriptor; the returned client must
    expose ``chat.completions.create(**payload)``, sync or awaitable.
    """

    env_vars = tuple(env_vars)

    def stream_fn(model: ModelDescriptor, context: StreamContext, options: StreamOptions) -> SourceStream:
        auth = resolve_auth(provider, env_vars, options.api_key)
        if auth is None:
            raise CredentialNotFoundError(provider, candidate_env_vars(provider, env_vars))

        payload = build_payload(model, context, options)
        client = client_factory(api_key=auth.api_key, model=model)
        LOGGER.debug("opening OpenAI stream for %s with %d message(s)", model.id, len(payload["messages"]))
        return SourceStream(_open_stream(client, payload), OpenAIChunkNormalizer(), signal=options.signal)

    return Connector(
        id=connector_id or builtin_connector_id(provider),
        label=label,
        provider=provider,
        api=api,
        models=models,
        env_vars=env_vars,
        stream_fn=stream_fn,
    )
