"""Input payload for a single streaming call."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .errors import MessageShapeError
from .message import Message, coerce_messages, message_to_dict
from .toolbridge import ToolSchema, extract_tool_schema


@dataclass(frozen=True, slots=True)
class StreamContext:
    """System prompt, conversation history and tools for one call."""

    system_prompt: str | None = None
    messages: tuple[Message, ...] = ()
    tools: tuple[ToolSchema, ...] = ()

    def __post_init__(self) -> None:
        if self.system_prompt is not None and not isinstance(self.system_prompt, str):
            msg = "system_prompt must be a string"
            raise TypeError(msg)
        object.__setattr__(self, "messages", coerce_messages(self.messages))

        if isinstance(self.tools, (str, bytes, bytearray)) or not isinstance(self.tools, Sequence):
            msg = "tools must be a sequence of tool schemas"
            raise TypeError(msg)
        object.__setattr__(self, "tools", tuple(extract_tool_schema(tool) for tool in self.tools))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> StreamContext:
        """Build a context from its wire form (``systemPrompt``, ``messages``, ``tools``)."""

        if not isinstance(payload, Mapping):
            msg = "stream context must be a mapping"
            raise MessageShapeError(msg)
        return cls(
            system_prompt=payload.get("systemPrompt", payload.get("system_prompt")),
            messages=tuple(payload.get("messages") or ()),
            tools=tuple(payload.get("tools") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"messages": [message_to_dict(message) for message in self.messages]}
        if self.system_prompt is not None:
            payload["systemPrompt"] = self.system_prompt
        if self.tools:
            payload["tools"] = [tool.to_dict() for tool in self.tools]
        return payload

    def with_messages(self, *messages: Message) -> StreamContext:
        """Return a copy with ``messages`` appended to the history."""

        return StreamContext(
            system_prompt=self.system_prompt,
            messages=self.messages + tuple(messages),
            tools=self.tools,
        )
