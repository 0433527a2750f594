"""Adapt assistant-message event streams from model-serving libraries.

Many model-serving libraries emit an "assistant message event" stream: a
``start`` event, per-block ``*_start``/``*_delta``/``*_end`` events keyed by a
content-block index, and a terminal ``done`` or ``error`` event. Every event
may carry a ``partial`` snapshot of the assistant message assembled so far.

:class:`ProviderEventNormalizer` maps that shape onto canonical
:mod:`patchbay.core.stream` events and :func:`build_connector` wraps a backend
exposing it as a :class:`~patchbay.connectors.base.Connector`.

Raw event to canonical event:

=================  ==========================================
raw                canonical
=================  ==========================================
start              start
text_start         (suppressed, no payload)
text_delta         text_delta
text_end           text_end
thinking_start     (suppressed, no payload)
thinking_delta     thinking_delta
thinking_end       thinking_end
toolcall_start     toolcall_start (id when already known)
toolcall_delta     toolcall_delta (id when already known)
toolcall_end       toolcall_end
done               done (usage when reported)
error              error
=================  ==========================================
"""

from __future__ import annotations

from collections.abc import AsyncIterable, Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
import logging
from typing import Any, Protocol

from ..auth import candidate_env_vars, resolve_auth
from ..core.context import StreamContext
from ..core.errors import AdapterError, CredentialNotFoundError
from ..core.message import ToolCall, message_to_dict
from ..core.model import ModelDescriptor
from ..core.signal import AbortSignal
from ..core.stream import (
    DoneEvent,
    ErrorEvent,
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
from ..core.utils import ensure_mapping, parse_json_object, thaw_json
from ..naming import builtin_connector_id, provider_label
from .base import Connector, StreamOptions

LOGGER = logging.getLogger(__name__)

IdResolver = Callable[[Mapping[str, Any]], "str | None"]

_STOP_REASONS: dict[str, StopReason] = {
    "stop": StopReason.STOP,
    "end_turn": StopReason.STOP,
    "stop_sequence": StopReason.STOP,
    "toolUse": StopReason.TOOL_USE,
    "tool_use": StopReason.TOOL_USE,
    "tool_calls": StopReason.TOOL_USE,
    "length": StopReason.LENGTH,
    "max_tokens": StopReason.LENGTH,
    "error": StopReason.ERROR,
    "content_filter": StopReason.ERROR,
    "aborted": StopReason.ERROR,
}

_MARKER_EVENTS = frozenset({"text_start", "thinking_start"})


class StreamingBackend(Protocol):
    """A model-serving library emitting assistant-message events."""

    def stream(
        self,
        model: ModelDescriptor,
        context: Mapping[str, Any],
        options: Mapping[str, Any],
    ) -> AsyncIterable[Any] | Awaitable[AsyncIterable[Any]]:
        """Start a call and return its raw event stream."""


def map_stop_reason(reason: Any) -> StopReason:
    """Map a backend stop reason onto :class:`StopReason`.

    Unknown reasons map to ``StopReason.ERROR``.
    """

    if isinstance(reason, StopReason):
        return reason
    mapped = _STOP_REASONS.get(reason) if isinstance(reason, str) else None
    if mapped is None:
        LOGGER.warning("unknown stop reason %r reported by backend; treating as error", reason)
        return StopReason.ERROR
    return mapped


def _field(mapping: Mapping[str, Any], snake: str, camel: str) -> Any:
    value = mapping.get(snake)
    if value is None:
        value = mapping.get(camel)
    return value


def _content_index(event: Mapping[str, Any]) -> int:
    index = _field(event, "content_index", "contentIndex")
    if index is None:
        return 0
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        msg = "content_index must be a non-negative integer"
        raise AdapterError(msg)
    return index


def _partial_block(event: Mapping[str, Any]) -> Mapping[str, Any] | None:
    partial = event.get("partial")
    if partial is None:
        return None
    content = ensure_mapping(partial, path="partial").get("content")
    if isinstance(content, (str, bytes)) or not isinstance(content, Sequence):
        return None
    index = _content_index(event)
    if index >= len(content):
        return None
    return ensure_mapping(content[index], path=f"partial.content[{index}]")


def _string_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def partial_snapshot_id(event: Mapping[str, Any]) -> str | None:
    """Read the tool-call id from the partial message at the event's block index."""

    block = _partial_block(event)
    if block is None:
        return None
    return _string_or_none(block.get("id"))


def explicit_event_id(event: Mapping[str, Any]) -> str | None:
    """Read the tool-call id carried directly on the event."""

    return _string_or_none(_field(event, "id", "tool_call_id"))


@dataclass
class _ToolCallState:
    """Track incremental metadata for a tool call at one content-block index."""

    call_id: str | None = None
    name: str | None = None
    fragments: list[str] = field(default_factory=list)

    def remember(self, event: Mapping[str, Any], id_resolver: IdResolver) -> None:
        call_id = id_resolver(event)
        if call_id is not None:
            self.call_id = call_id
        if self.name is None:
            block = _partial_block(event)
            if block is not None:
                self.name = _string_or_none(block.get("name"))

    def arguments(self) -> str:
        return "".join(self.fragments)


class ProviderEventNormalizer:
    """Normalize assistant-message events into canonical stream events.

    One pass and no buffering: each raw event produces at most one canonical
    event. Tool-call fragments are routed to an accumulator per content-block
    index so interleaved calls resolve to the right id and arguments.
    """

    def __init__(self, *, id_resolver: IdResolver = partial_snapshot_id) -> None:
        self._id_resolver = id_resolver
        self._tool_states: dict[int, _ToolCallState] = {}

    async def normalize_chunk(self, chunk: Any) -> list[StreamEvent]:
        event = ensure_mapping(chunk, path="provider event")
        kind = event.get("type")

        if kind == "start":
            return [StartEvent()]
        if kind == "text_delta":
            return [TextDelta(delta=self._require_str(event, "delta"))]
        if kind == "text_end":
            return [TextEnd(content=self._require_str(event, "content"))]
        if kind == "thinking_delta":
            return [ThinkingDelta(delta=self._require_str(event, "delta"))]
        if kind == "thinking_end":
            return [ThinkingEnd(content=self._require_str(event, "content"))]
        if kind == "toolcall_start":
            return [self._tool_call_start(event)]
        if kind == "toolcall_delta":
            return [self._tool_call_delta(event)]
        if kind == "toolcall_end":
            return [self._tool_call_end(event)]
        if kind == "done":
            return [self._done(event)]
        if kind == "error":
            return [self._error(event)]

        if kind not in _MARKER_EVENTS:
            LOGGER.debug("ignoring unknown provider event type %r", kind)
        return []

    def _tool_call_start(self, event: Mapping[str, Any]) -> ToolCallStart:
        index = _content_index(event)
        state = _ToolCallState()
        self._tool_states[index] = state
        state.remember(event, self._id_resolver)
        return ToolCallStart(id=state.call_id)

    def _tool_call_delta(self, event: Mapping[str, Any]) -> ToolCallDelta:
        index = _content_index(event)
        fragment = self._require_str(event, "delta")
        state = self._tool_states.setdefault(index, _ToolCallState())
        state.remember(event, self._id_resolver)
        state.fragments.append(fragment)
        return ToolCallDelta(delta=fragment, id=state.call_id)

    def _tool_call_end(self, event: Mapping[str, Any]) -> ToolCallEnd:
        index = _content_index(event)
        state = self._tool_states.pop(index, None) or _ToolCallState()
        state.remember(event, self._id_resolver)

        raw_call = _field(event, "tool_call", "toolCall")
        payload = ensure_mapping(raw_call, path="tool_call") if raw_call is not None else {}

        call_id = _string_or_none(payload.get("id")) or state.call_id
        if call_id is None:
            msg = f"tool call at index {index} finished without an id"
            raise AdapterError(msg)
        name = _string_or_none(payload.get("name")) or state.name
        if name is None:
            msg = f"tool call at index {index} finished without a name"
            raise AdapterError(msg)

        raw_arguments = payload.get("arguments")
        if raw_arguments is None:
            raw_arguments = state.arguments()
        elif not isinstance(raw_arguments, (str, Mapping)):
            raw_arguments = thaw_json(ensure_mapping(raw_arguments, path="tool_call.arguments"))
        arguments = parse_json_object(raw_arguments, path=f"tool call '{name}' arguments")
        return ToolCallEnd(tool_call=ToolCall(id=call_id, name=name, arguments=arguments))

    def _done(self, event: Mapping[str, Any]) -> DoneEvent:
        self._drop_open_tool_calls()
        return DoneEvent(stop_reason=map_stop_reason(event.get("reason")), usage=self._usage(event))

    def _error(self, event: Mapping[str, Any]) -> ErrorEvent:
        self._drop_open_tool_calls()
        error = event.get("error")
        message: str | None = None
        if isinstance(error, str):
            message = error or None
        elif error is not None:
            details = ensure_mapping(error, path="error")
            message = _string_or_none(_field(details, "error_message", "errorMessage"))

        if message is None:
            LOGGER.warning("provider error event carried no message: %r", event)
            message = f"LLM provider error ({event.get('reason')})"
        return ErrorEvent(error=message)

    def _usage(self, event: Mapping[str, Any]) -> Usage | None:
        message = event.get("message")
        if message is None:
            return None
        usage = ensure_mapping(message, path="message").get("usage")
        if usage is None:
            return None
        counts = ensure_mapping(usage, path="message.usage")
        input_tokens = counts.get("input")
        output_tokens = counts.get("output")
        if not isinstance(input_tokens, int) or not isinstance(output_tokens, int):
            return None
        return Usage(input_tokens=input_tokens, output_tokens=output_tokens)

    def _drop_open_tool_calls(self) -> None:
        if self._tool_states:
            LOGGER.debug("discarding %d unfinished tool call(s)", len(self._tool_states))
            self._tool_states.clear()

    @staticmethod
    def _require_str(event: Mapping[str, Any], key: str) -> str:
        value = event.get(key)
        if not isinstance(value, str):
            msg = f"provider '{event.get('type')}' event must carry a string '{key}'"
            raise AdapterError(msg)
        return value


def adapt_events(
    raw_events: AsyncIterable[Any] | Awaitable[AsyncIterable[Any]],
    *,
    signal: AbortSignal | None = None,
    id_resolver: IdResolver = partial_snapshot_id,
) -> SourceStream:
    """Wrap a raw assistant-message event stream as a canonical event stream."""

    return SourceStream(raw_events, ProviderEventNormalizer(id_resolver=id_resolver), signal=signal)


def to_backend_context(context: StreamContext) -> dict[str, Any]:
    """Render ``context`` for a backend; tool schemas use ``parameters``."""

    payload: dict[str, Any] = {
        "messages": [message_to_dict(message) for message in context.messages],
    }
    if context.system_prompt is not None:
        payload["systemPrompt"] = context.system_prompt
    if context.tools:
        payload["tools"] = [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": thaw_json(tool.input_schema),
            }
            for tool in context.tools
        ]
    return payload


def build_connector(
    backend: StreamingBackend,
    provider: str,
    *,
    models: Sequence[ModelDescriptor] = (),
    api: str | None = None,
    label: str | None = None,
    env_vars: Sequence[str] = (),
    connector_id: str | None = None,
    id_resolver: IdResolver = partial_snapshot_id,
) -> Connector:
    """Build a connector that streams through ``backend``.

    Credentials are resolved per call from ``options.api_key`` and the
    environment; a call without credentials fails with
    :class:`CredentialNotFoundError` before any event is produced.
    """

    models = tuple(models)
    if not models:
        LOGGER.warning("connector for provider '%s' has no models defined", provider)
    transport = api or (models[0].api if models else None)
    if transport is None:
        msg = f"connector for provider '{provider}' needs an api when no models are given"
        raise ValueError(msg)
    env_vars = tuple(env_vars)

    def stream_fn(model: ModelDescriptor, context: StreamContext, options: StreamOptions) -> SourceStream:
        auth = resolve_auth(provider, env_vars, options.api_key)
        if auth is None:
            raise CredentialNotFoundError(provider, candidate_env_vars(provider, env_vars))

        backend_options = options.to_dict()
        backend_options["apiKey"] = auth.api_key
        raw_events = backend.stream(model, to_backend_context(context), backend_options)
        return adapt_events(raw_events, signal=options.signal, id_resolver=id_resolver)

    return Connector(
        id=connector_id or builtin_connector_id(provider),
        label=label or provider_label(provider),
        provider=provider,
        api=transport,
        models=models,
        env_vars=env_vars,
        stream_fn=stream_fn,
    )
