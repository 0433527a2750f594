"""Canonical streaming event schema and base iterator primitives."""

from __future__ import annotations

import abc
import asyncio
from collections import deque
from collections.abc import AsyncIterable, Awaitable, Iterable
from dataclasses import dataclass
from enum import Enum
import inspect
import logging
from typing import Any, AsyncIterator, ClassVar, Deque, List, Protocol, Union

from .errors import AdapterError, StreamAbortedError
from .message import ToolCall
from .signal import AbortSignal
from .utils import thaw_json

LOGGER = logging.getLogger(__name__)


class StopReason(str, Enum):
    """Canonical reasons a streaming call finished."""

    STOP = "stop"
    TOOL_USE = "toolUse"
    LENGTH = "length"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Usage:
    """Token counts reported by the backend."""

    input_tokens: int
    output_tokens: int


@dataclass(frozen=True, slots=True)
class StartEvent:
    """First event of every call."""

    type: ClassVar[str] = "start"


@dataclass(frozen=True, slots=True)
class TextDelta:
    """Incremental assistant text."""

    delta: str

    type: ClassVar[str] = "text_delta"


@dataclass(frozen=True, slots=True)
class TextEnd:
    """Closes a text block with its full content."""

    content: str

    type: ClassVar[str] = "text_end"


@dataclass(frozen=True, slots=True)
class ThinkingDelta:
    """Incremental reasoning text."""

    delta: str

    type: ClassVar[str] = "thinking_delta"


@dataclass(frozen=True, slots=True)
class ThinkingEnd:
    """Closes a reasoning block with its full content."""

    content: str

    type: ClassVar[str] = "thinking_end"


@dataclass(frozen=True, slots=True)
class ToolCallStart:
    """A tool call has begun; ``id`` is set only when the backend revealed it."""

    id: str | None = None

    type: ClassVar[str] = "toolcall_start"


@dataclass(frozen=True, slots=True)
class ToolCallDelta:
    """A fragment of a tool call's JSON arguments."""

    delta: str
    id: str | None = None

    type: ClassVar[str] = "toolcall_delta"


@dataclass(frozen=True, slots=True)
class ToolCallEnd:
    """A fully resolved tool call with parsed arguments."""

    tool_call: ToolCall

    type: ClassVar[str] = "toolcall_end"


@dataclass(frozen=True, slots=True)
class DoneEvent:
    """Terminal event for a call that completed.

    ``usage`` is ``None`` when the backend did not report token counts.
    ``stop_reason=ERROR`` without a preceding :class:`ErrorEvent` means the
    backend produced no usable content (refusal or empty response).
    """

    stop_reason: StopReason
    usage: Usage | None = None

    type: ClassVar[str] = "done"

    def __post_init__(self) -> None:
        object.__setattr__(self, "stop_reason", StopReason(self.stop_reason))


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """Terminal event for a call that failed after it started."""

    error: str

    type: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        if not isinstance(self.error, str) or not self.error:
            msg = "error events must carry a non-empty message"
            raise ValueError(msg)


StreamEvent = Union[
    StartEvent,
    TextDelta,
    TextEnd,
    ThinkingDelta,
    ThinkingEnd,
    ToolCallStart,
    ToolCallDelta,
    ToolCallEnd,
    DoneEvent,
    ErrorEvent,
]

EVENT_TYPES = (
    StartEvent,
    TextDelta,
    TextEnd,
    ThinkingDelta,
    ThinkingEnd,
    ToolCallStart,
    ToolCallDelta,
    ToolCallEnd,
    DoneEvent,
    ErrorEvent,
)

TERMINAL_EVENTS = (DoneEvent, ErrorEvent)


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)


def event_to_dict(event: StreamEvent) -> dict[str, Any]:
    """Return the wire form of ``event``; absent optional fields are omitted."""

    payload: dict[str, Any] = {"type": event.type}
    if isinstance(event, (TextDelta, ThinkingDelta)):
        payload["delta"] = event.delta
    elif isinstance(event, (TextEnd, ThinkingEnd)):
        payload["content"] = event.content
    elif isinstance(event, ToolCallStart):
        if event.id is not None:
            payload["id"] = event.id
    elif isinstance(event, ToolCallDelta):
        payload["delta"] = event.delta
        if event.id is not None:
            payload["id"] = event.id
    elif isinstance(event, ToolCallEnd):
        payload["toolCall"] = {
            "id": event.tool_call.id,
            "name": event.tool_call.name,
            "arguments": thaw_json(event.tool_call.arguments),
        }
    elif isinstance(event, DoneEvent):
        payload["stopReason"] = event.stop_reason.value
        if event.usage is not None:
            payload["usage"] = {
                "inputTokens": event.usage.input_tokens,
                "outputTokens": event.usage.output_tokens,
            }
    elif isinstance(event, ErrorEvent):
        payload["error"] = event.error
    return payload


class StreamNormalizer(Protocol):
    async def normalize_chunk(self, chunk: Any) -> List[StreamEvent]:
        """Map one raw source chunk into canonical stream events."""


class PassthroughNormalizer:
    """Normalizer for sources that already yield canonical events."""

    async def normalize_chunk(self, chunk: Any) -> List[StreamEvent]:
        if not isinstance(chunk, EVENT_TYPES):
            msg = f"connector yielded a non-event value: {type(chunk).__name__}"
            raise AdapterError(msg)
        return [chunk]


class BaseStreamIterator(AsyncIterator[StreamEvent], metaclass=abc.ABCMeta):
    """Shared async iterator every connector stream is delivered through.

    Subclasses source raw chunks by implementing :meth:`_get_next_chunk`.
    Each chunk is normalized into zero or more :class:`StreamEvent` values
    which are handed out in order. The iterator enforces the event protocol:

    * the first event must be :class:`StartEvent`; anything else is a
      pre-flight failure and raises :class:`AdapterError`;
    * once started, failures from the source or the normalizer are reported
      as a terminal :class:`ErrorEvent` instead of being raised;
    * nothing is emitted after the terminal event, and the source is closed;
    * an :class:`AbortSignal` aborts the pending pull, drops any buffered
      events, and raises :class:`StreamAbortedError`.
    """

    def __init__(self, normalizer: StreamNormalizer, *, signal: AbortSignal | None = None) -> None:
        self._normalizer = normalizer
        self._signal = signal
        self._buffer: Deque[StreamEvent] = deque()
        self._started = False
        self._closed = False
        self._finalized = False
        self._exhausted = False
        self._close_lock = asyncio.Lock()

    def __aiter__(self) -> BaseStreamIterator:
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed and not self._buffer:
            raise StopAsyncIteration

        if self._signal is not None and self._signal.aborted:
            # Buffered partial content is discarded along with the source.
            await self.close()
            raise self._signal.to_error()

        if self._finalized and not self._buffer:
            await self.close()
            raise StopAsyncIteration

        buffered = self._pop_buffered_event()
        if buffered is not None:
            return await self._finalize_if_needed(buffered)

        while True:
            if self._closed:
                raise StopAsyncIteration

            if self._finalized:
                await self.close()
                raise StopAsyncIteration

            events = await self._pull_events()
            if not events:
                continue

            self._buffer.extend(events)
            buffered = self._pop_buffered_event()
            if buffered is not None:
                return await self._finalize_if_needed(buffered)

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Release source resources and prevent additional iteration."""

        async with self._close_lock:
            if self._closed:
                return

            self._closed = True
            self._buffer.clear()
            await self._on_close()

    async def aclose(self) -> None:
        await self.close()

    async def _pull_events(self) -> List[StreamEvent]:
        if self._signal is not None and self._signal.aborted:
            await self.close()
            raise self._signal.to_error()

        if self._exhausted:
            return self._missing_terminal()

        try:
            chunk = await self._await_with_signal(self._get_next_chunk())
        except StopAsyncIteration:
            self._exhausted = True
            return await self._finish_source()
        except StreamAbortedError:
            await self.close()
            raise
        except Exception as exc:
            return await self._fail(exc)

        try:
            return list(await self._normalizer.normalize_chunk(chunk))
        except Exception as exc:
            return await self._fail(exc)

    async def _finish_source(self) -> List[StreamEvent]:
        finalize = getattr(self._normalizer, "finalize", None)
        if finalize is None:
            return self._missing_terminal()
        try:
            events = list(await finalize())
        except Exception as exc:
            return await self._fail(exc)
        return events or self._missing_terminal()

    def _missing_terminal(self) -> List[StreamEvent]:
        if not self._started:
            msg = "stream ended before emitting a 'start' event"
            raise AdapterError(msg)
        LOGGER.warning("stream source ended without a terminal event")
        return [ErrorEvent(error="stream ended without a terminal event")]

    async def _fail(self, exc: Exception) -> List[StreamEvent]:
        if not self._started:
            await self.close()
            raise exc
        LOGGER.warning("stream failed after start: %s", exc, exc_info=True)
        # The error event is terminal, so the source is closed right after it.
        self._exhausted = True
        return [ErrorEvent(error=_describe(exc))]

    async def _await_with_signal(self, pending: Awaitable[Any]) -> Any:
        signal = self._signal
        if signal is None:
            return await pending

        pull = asyncio.ensure_future(pending)
        aborted = asyncio.ensure_future(signal.wait())
        try:
            await asyncio.wait({pull, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            aborted.cancel()

        if pull.done():
            return pull.result()

        pull.cancel()
        # Let the transport unwind; whatever it had buffered is discarded.
        await asyncio.gather(pull, return_exceptions=True)
        raise signal.to_error()

    async def _finalize_if_needed(self, event: StreamEvent) -> StreamEvent:
        event = self._admit(event)
        if is_terminal(event):
            self._finalized = True
            self._buffer.clear()
            await self.close()
        return event

    def _admit(self, event: StreamEvent) -> StreamEvent:
        if not self._started:
            if not isinstance(event, StartEvent):
                msg = f"first stream event must be 'start', got '{event.type}'"
                raise AdapterError(msg)
            self._started = True
            return event
        if isinstance(event, StartEvent):
            return ErrorEvent(error="connector emitted a second 'start' event")
        return event

    def _pop_buffered_event(self) -> StreamEvent | None:
        if not self._buffer:
            return None
        return self._buffer.popleft()

    @abc.abstractmethod
    async def _get_next_chunk(self) -> Any:
        """Retrieve the next raw chunk from the source."""

    async def _on_close(self) -> None:
        """Allow subclasses to dispose source resources when closing."""


class SourceStream(BaseStreamIterator):
    """Stream iterator over any async iterable of raw chunks.

    ``source`` may also be an awaitable resolving to the async iterable, for
    transports whose connection handshake is asynchronous.
    """

    def __init__(
        self,
        source: AsyncIterable[Any] | Awaitable[AsyncIterable[Any]],
        normalizer: StreamNormalizer | None = None,
        *,
        signal: AbortSignal | None = None,
    ) -> None:
        self._source: Any = source
        self._iterator: Any = None
        self._source_closed = False
        super().__init__(normalizer or PassthroughNormalizer(), signal=signal)

    async def _get_next_chunk(self) -> Any:
        if self._iterator is None:
            self._iterator = await self._open()
        return await self._iterator.__anext__()

    async def _open(self) -> Any:
        source = self._source
        if inspect.isawaitable(source) and not hasattr(source, "__aiter__"):
            source = await source
            self._source = source

        iterator_factory = getattr(source, "__aiter__", None)
        if iterator_factory is None or not callable(iterator_factory):
            msg = "stream source must support async iteration"
            raise AdapterError(msg)
        iterator = iterator_factory()
        if not hasattr(iterator, "__anext__"):
            msg = "stream source iterator must define '__anext__'"
            raise AdapterError(msg)
        return iterator

    async def _on_close(self) -> None:
        if self._source_closed:
            return
        self._source_closed = True

        closed: list[Any] = []
        for target in (self._iterator, self._source):
            if target is None or any(target is seen for seen in closed):
                continue
            closed.append(target)
            # An un-awaited handshake coroutine is closed here as well.
            for closer_name in ("aclose", "close"):
                closer = getattr(target, closer_name, None)
                if closer is None:
                    continue
                result = closer()
                if inspect.isawaitable(result):
                    await result
                break


async def replay_stream(iterator: AsyncIterable[StreamEvent]) -> List[StreamEvent]:
    """Collect all events emitted by a stream and close it."""

    events: List[StreamEvent] = []
    try:
        async for event in iterator:
            events.append(event)
    finally:
        closer = getattr(iterator, "aclose", None) or getattr(iterator, "close", None)
        if closer is not None:
            result = closer()
            if inspect.isawaitable(result):
                await result
    return events


def validate_event_sequence(events: Iterable[StreamEvent]) -> None:
    """Check a completed call's events against the ordering rules.

    Raises :class:`AdapterError` describing the first violation found.
    """

    sequence = list(events)
    if not sequence or not isinstance(sequence[0], StartEvent):
        raise AdapterError("first event must be 'start'")

    terminals = [index for index, event in enumerate(sequence) if is_terminal(event)]
    if len(terminals) != 1:
        raise AdapterError(f"expected exactly one terminal event, found {len(terminals)}")
    if terminals[0] != len(sequence) - 1:
        raise AdapterError("terminal event must be the last event")
    if sum(isinstance(event, StartEvent) for event in sequence) != 1:
        raise AdapterError("expected exactly one 'start' event")

    text: list[str] = []
    thinking: list[str] = []
    open_calls = 0
    for event in sequence:
        if isinstance(event, TextDelta):
            text.append(event.delta)
        elif isinstance(event, ThinkingDelta):
            thinking.append(event.delta)
        elif isinstance(event, TextEnd) and event.content != "".join(text):
            raise AdapterError("text_end content does not match the accumulated text deltas")
        elif isinstance(event, ThinkingEnd) and event.content != "".join(thinking):
            raise AdapterError("thinking_end content does not match the accumulated thinking deltas")
        elif isinstance(event, ToolCallStart):
            open_calls += 1
        elif isinstance(event, ToolCallDelta) and open_calls == 0:
            raise AdapterError("toolcall_delta arrived outside of a tool call")
        elif isinstance(event, ToolCallEnd):
            if open_calls == 0:
                raise AdapterError("toolcall_end arrived without a matching toolcall_start")
            open_calls -= 1


def _describe(exc: BaseException) -> str:
    message = str(exc)
    if message:
        return message
    return type(exc).__name__
