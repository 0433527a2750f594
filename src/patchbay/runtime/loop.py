"""Async runtime coordinating a connector stream, response state, and transcripts."""

from __future__ import annotations

import inspect
import logging
from asyncio import CancelledError
from collections.abc import AsyncIterator, Mapping
from typing import Any, assert_never

from patchbay.connectors.base import Connector, StreamOptions
from patchbay.core.context import StreamContext
from patchbay.core.model import ModelDescriptor
from patchbay.core.stream import (
    BaseStreamIterator,
    DoneEvent,
    ErrorEvent,
    StartEvent,
    StreamEvent,
    TextDelta,
    TextEnd,
    ThinkingDelta,
    ThinkingEnd,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    is_terminal,
)

from .state import AssistantResponse, ResponseState


LOGGER = logging.getLogger(__name__)


class SessionTranscript:
    """Buffer of streaming events and state snapshots for deterministic replay."""

    def __init__(self) -> None:
        self._events: list[StreamEvent] = []
        self._states: list[ResponseState] = []

    def record(self, event: StreamEvent, state: ResponseState) -> None:
        """Append an event alongside a snapshot of the response state."""

        self._events.append(event)
        self._states.append(state.snapshot())

    @property
    def events(self) -> tuple[StreamEvent, ...]:
        return tuple(self._events)

    @property
    def states(self) -> tuple[ResponseState, ...]:
        return tuple(self._states)

    def __len__(self) -> int:
        return len(self._events)

    async def replay(self) -> AsyncIterator[StreamEvent]:
        """Yield recorded events as an async iterator."""

        for event in self._events:
            yield event


class StreamRuntime(AsyncIterator[StreamEvent]):
    """Drive one connector call, tracking its state and recording a transcript."""

    def __init__(
        self,
        connector: Connector,
        model: ModelDescriptor | str,
        context: StreamContext | Mapping[str, Any],
        options: StreamOptions | None = None,
        *,
        transcript: SessionTranscript | None = None,
    ) -> None:
        self._connector = connector
        self._model = model
        self._context = context
        self._options = options
        self._stream: BaseStreamIterator | None = None
        self._closed = False

        self.state = ResponseState()
        self.transcript = transcript or SessionTranscript()

    def __aiter__(self) -> StreamRuntime:
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed:
            raise StopAsyncIteration

        try:
            iterator = self._ensure_stream()
            event = await iterator.__anext__()
        except (StopAsyncIteration, CancelledError, Exception):
            await self.aclose()
            raise

        self._handle_event(event)

        if is_terminal(event):
            await self.aclose()

        return event

    @property
    def closed(self) -> bool:
        return self._closed

    def response(self) -> AssistantResponse:
        return AssistantResponse.from_state(self.state)

    async def aclose(self) -> None:
        """Close the underlying stream iterator and mark the runtime closed."""

        if self._closed:
            return

        self._closed = True
        iterator = self._stream
        self._stream = None
        if iterator is None:
            return

        closer = getattr(iterator, "aclose", None)
        if closer is not None:
            result = closer()
            if inspect.isawaitable(result):
                await result
            return

        await iterator.close()

    def on_event(self, event: TextDelta | ThinkingDelta) -> None:
        """Log content deltas emitted by the connector."""

        LOGGER.debug("on_event type=%s delta=%r", event.type, event.delta)

    def on_tool(self, event: ToolCallEnd) -> None:
        """Log completed tool calls."""

        LOGGER.info("on_tool call id=%s name=%s", event.tool_call.id, event.tool_call.name)

    def on_complete(self, event: DoneEvent | ErrorEvent) -> None:
        """Log completion of the streaming call."""

        if isinstance(event, DoneEvent):
            LOGGER.info(
                "on_complete stop_reason=%s output_length=%s usage=%s",
                event.stop_reason.value,
                len(self.state.text),
                event.usage,
            )
        else:
            LOGGER.info("on_complete error=%s", event.error)

    def _ensure_stream(self) -> BaseStreamIterator:
        if self._stream is None:
            self._stream = self._connector.stream(self._model, self._context, self._options)
        return self._stream

    def _handle_event(self, event: StreamEvent) -> None:
        state = self.state
        state.event_count += 1

        if isinstance(event, StartEvent):
            LOGGER.debug("stream started via connector %s", self._connector.id)
        elif isinstance(event, TextDelta):
            state.text_parts.append(event.delta)
            self.on_event(event)
        elif isinstance(event, ThinkingDelta):
            state.thinking_parts.append(event.delta)
            self.on_event(event)
        elif isinstance(event, (TextEnd, ThinkingEnd, ToolCallStart, ToolCallDelta)):
            # Tool arguments are taken whole from toolcall_end.
            pass
        elif isinstance(event, ToolCallEnd):
            state.tool_calls.append(event.tool_call)
            self.on_tool(event)
        elif isinstance(event, DoneEvent):
            state.stop_reason = event.stop_reason
            state.usage = event.usage
            self.on_complete(event)
        elif isinstance(event, ErrorEvent):
            state.error = event.error
            self.on_complete(event)
        else:
            assert_never(event)

        self.transcript.record(event, state)


async def collect_response(
    connector: Connector,
    model: ModelDescriptor | str,
    context: StreamContext | Mapping[str, Any],
    options: StreamOptions | None = None,
    *,
    transcript: SessionTranscript | None = None,
) -> AssistantResponse:
    """Drain one call and return its accumulated response."""

    runtime = StreamRuntime(connector, model, context, options, transcript=transcript)
    async for _ in runtime:
        pass
    return runtime.response()
