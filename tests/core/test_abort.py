from __future__ import annotations

import asyncio
from typing import Any, List

import pytest

from patchbay.connectors.base import Connector, StreamOptions
from patchbay.core.context import StreamContext
from patchbay.core.errors import AdapterError, StreamAbortedError
from patchbay.core.model import ModelDescriptor
from patchbay.core.signal import AbortSignal
from patchbay.core.stream import DoneEvent, SourceStream, StartEvent, StopReason, StreamEvent, TextDelta


def _blocking_connector(state: dict[str, Any]) -> Connector:
    """Connector whose source stalls forever after one text delta."""

    async def _source():
        try:
            yield StartEvent()
            yield TextDelta("partial")
            await asyncio.Event().wait()
            yield DoneEvent(StopReason.STOP)
        finally:
            state["closed"] = True

    def stream_fn(model: ModelDescriptor, context: StreamContext, options: StreamOptions) -> Any:
        state["calls"] = state.get("calls", 0) + 1
        return _source()

    return Connector(
        id="test/blocking",
        label="Blocking",
        provider="blocking",
        api="blocking-api",
        stream_fn=stream_fn,
        models=(ModelDescriptor(id="stall-1", api="blocking-api", provider="blocking"),),
        requires_auth=False,
    )


def test_pre_aborted_signal_raises_before_any_event() -> None:
    state: dict[str, Any] = {}
    connector = _blocking_connector(state)
    signal = AbortSignal.aborted_with()

    with pytest.raises(StreamAbortedError) as excinfo:
        connector.stream("stall-1", StreamContext(), StreamOptions(signal=signal))

    error = excinfo.value
    assert isinstance(error, AdapterError)
    assert error.kind == "abort"
    assert "abort" in type(error).__name__.lower()
    assert "calls" not in state


def test_abort_reason_exception_becomes_the_cause() -> None:
    reason = TimeoutError("deadline exceeded")
    signal = AbortSignal.aborted_with(reason)

    with pytest.raises(StreamAbortedError) as excinfo:
        signal.raise_if_aborted()

    assert excinfo.value.reason is reason
    assert excinfo.value.__cause__ is reason
    assert "deadline exceeded" in str(excinfo.value)


def test_first_abort_reason_wins() -> None:
    signal = AbortSignal()
    signal.abort("first")
    signal.abort("second")

    assert signal.aborted
    assert signal.reason == "first"


def test_abort_during_pending_pull_stops_the_stream_and_closes_source() -> None:
    state: dict[str, Any] = {}
    connector = _blocking_connector(state)

    async def _run() -> List[StreamEvent]:
        signal = AbortSignal()
        stream = connector.stream("stall-1", StreamContext(), StreamOptions(signal=signal))
        seen: List[StreamEvent] = []
        with pytest.raises(StreamAbortedError, match="user cancelled"):
            async for event in stream:
                seen.append(event)
                if isinstance(event, TextDelta):
                    asyncio.get_running_loop().call_later(0.01, signal.abort, "user cancelled")
        assert stream.closed
        return seen

    seen = asyncio.run(_run())

    assert seen == [StartEvent(), TextDelta("partial")]
    assert state["closed"]


def test_abort_between_pulls_raises_on_next_read() -> None:
    state: dict[str, Any] = {}
    connector = _blocking_connector(state)

    async def _run() -> None:
        signal = AbortSignal()
        stream = connector.stream("stall-1", StreamContext(), StreamOptions(signal=signal))
        assert await anext(stream) == StartEvent()
        signal.abort()
        with pytest.raises(StreamAbortedError, match="stream aborted"):
            await anext(stream)
        with pytest.raises(StopAsyncIteration):
            await anext(stream)

    asyncio.run(_run())

    assert state["closed"]


def test_wait_returns_immediately_once_aborted() -> None:
    signal = AbortSignal.aborted_with("done")

    asyncio.run(asyncio.wait_for(signal.wait(), timeout=1))

    assert signal.aborted


class _BatchNormalizer:
    """Normalizer that turns one chunk into a whole batch of events."""

    async def normalize_chunk(self, chunk: Any) -> List[StreamEvent]:
        return list(chunk)


def test_abort_discards_events_already_buffered_from_one_chunk() -> None:
    closed: dict[str, bool] = {}

    async def _source():
        try:
            yield [StartEvent(), TextDelta("a"), TextDelta("b"), DoneEvent(StopReason.STOP)]
        finally:
            closed["source"] = True

    async def _run() -> List[StreamEvent]:
        signal = AbortSignal()
        stream = SourceStream(_source(), _BatchNormalizer(), signal=signal)
        assert await anext(stream) == StartEvent()
        signal.abort("user cancelled")
        remaining: List[StreamEvent] = []
        with pytest.raises(StreamAbortedError, match="user cancelled"):
            async for event in stream:
                remaining.append(event)
        assert stream.closed
        with pytest.raises(StopAsyncIteration):
            await anext(stream)
        return remaining

    assert asyncio.run(_run()) == []
    assert closed["source"]


def test_stream_that_finished_ignores_a_late_abort() -> None:
    async def _source():
        yield [StartEvent(), DoneEvent(StopReason.STOP)]

    async def _run() -> None:
        signal = AbortSignal()
        stream = SourceStream(_source(), _BatchNormalizer(), signal=signal)
        assert [event async for event in stream] == [StartEvent(), DoneEvent(StopReason.STOP)]
        signal.abort()
        with pytest.raises(StopAsyncIteration):
            await anext(stream)

    asyncio.run(_run())
