"""State accumulated while consuming one streaming response."""

from __future__ import annotations

from dataclasses import dataclass, field

from patchbay.core.message import AssistantMessage, ToolCall
from patchbay.core.stream import StopReason, Usage


@dataclass(slots=True)
class ResponseState:
    """Aggregated content of a single streaming call.

    Text and thinking are rebuilt from deltas; ``*_end`` events are optional
    and only confirm what the deltas already delivered.
    """

    text_parts: list[str] = field(default_factory=list)
    thinking_parts: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: StopReason | None = None
    usage: Usage | None = None
    error: str | None = None
    event_count: int = 0

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    @property
    def thinking(self) -> str:
        return "".join(self.thinking_parts)

    @property
    def finished(self) -> bool:
        return self.stop_reason is not None or self.error is not None

    def snapshot(self) -> ResponseState:
        """Return a copy that later events will not modify."""

        # Events and tool calls are frozen, so copying the lists is enough.
        return ResponseState(
            text_parts=list(self.text_parts),
            thinking_parts=list(self.thinking_parts),
            tool_calls=list(self.tool_calls),
            stop_reason=self.stop_reason,
            usage=self.usage,
            error=self.error,
            event_count=self.event_count,
        )


@dataclass(frozen=True, slots=True)
class AssistantResponse:
    """Final outcome of a call, ready to be appended to the history."""

    text: str
    thinking: str
    tool_calls: tuple[ToolCall, ...]
    stop_reason: StopReason | None
    usage: Usage | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.stop_reason not in (None, StopReason.ERROR)

    def to_message(self) -> AssistantMessage:
        return AssistantMessage(
            content=self.text or None,
            tool_calls=self.tool_calls or None,
        )

    @classmethod
    def from_state(cls, state: ResponseState) -> AssistantResponse:
        return cls(
            text=state.text,
            thinking=state.thinking,
            tool_calls=tuple(state.tool_calls),
            stop_reason=state.stop_reason,
            usage=state.usage,
            error=state.error,
        )
