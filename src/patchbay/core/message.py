"""Conversation message schema shared by connectors."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from .errors import AdapterError, MessageShapeError
from .utils import parse_json_object, thaw_json


class MessageRole(str, Enum):
    """Role discriminators understood by every connector."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "toolResult"


@dataclass(frozen=True, slots=True)
class TextBlock:
    """A text content block."""

    text: str

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            msg = "text block content must be a string"
            raise TypeError(msg)


@dataclass(frozen=True, slots=True)
class ImageBlock:
    """A base64 encoded image content block."""

    data: str
    mime_type: str

    def __post_init__(self) -> None:
        if not isinstance(self.data, str) or not self.data:
            msg = "image block data must be a non-empty base64 string"
            raise ValueError(msg)
        if not isinstance(self.mime_type, str) or "/" not in self.mime_type:
            msg = "image block mime_type must look like 'image/png'"
            raise ValueError(msg)


ContentBlock = Union[TextBlock, ImageBlock]


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: Mapping[str, Any]

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            msg = "tool call id must be a non-empty string"
            raise ValueError(msg)
        if not isinstance(self.name, str) or not self.name:
            msg = "tool call name must be a non-empty string"
            raise ValueError(msg)
        if not isinstance(self.arguments, Mapping):
            msg = "tool call arguments must be a mapping"
            raise TypeError(msg)

        frozen = parse_json_object(self.arguments, path="ToolCall.arguments")
        object.__setattr__(self, "arguments", frozen)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": thaw_json(self.arguments)}


@dataclass(frozen=True, slots=True)
class UserMessage:
    """A user turn; content is plain text or a tuple of content blocks."""

    content: str | tuple[ContentBlock, ...]

    role = MessageRole.USER

    def __post_init__(self) -> None:
        object.__setattr__(self, "content", _coerce_content(self.content, path="UserMessage.content"))


@dataclass(frozen=True, slots=True)
class AssistantMessage:
    """An assistant turn; content may be ``None`` for tool-use-only replies."""

    content: str | tuple[ContentBlock, ...] | None = None
    tool_calls: tuple[ToolCall, ...] | None = None

    role = MessageRole.ASSISTANT

    def __post_init__(self) -> None:
        if self.content is not None:
            object.__setattr__(
                self, "content", _coerce_content(self.content, path="AssistantMessage.content")
            )

        if self.tool_calls is not None:
            if not isinstance(self.tool_calls, Sequence) or isinstance(
                self.tool_calls, (str, bytes, bytearray)
            ):
                msg = "tool_calls must be a sequence of ToolCall instances"
                raise TypeError(msg)
            candidates = tuple(self.tool_calls)
            for call in candidates:
                if not isinstance(call, ToolCall):
                    msg = "tool_calls must contain ToolCall instances"
                    raise TypeError(msg)
            object.__setattr__(self, "tool_calls", candidates or None)


@dataclass(frozen=True, slots=True)
class ToolResultMessage:
    """The outcome of executing a tool call, fed back to the model."""

    tool_call_id: str
    tool_name: str
    content: tuple[ContentBlock, ...]
    is_error: bool = False

    role = MessageRole.TOOL_RESULT

    def __post_init__(self) -> None:
        if not isinstance(self.tool_call_id, str) or not self.tool_call_id:
            msg = "tool_call_id must be a non-empty string"
            raise ValueError(msg)
        if not isinstance(self.tool_name, str) or not self.tool_name:
            msg = "tool_name must be a non-empty string"
            raise ValueError(msg)
        content = _coerce_content(self.content, path="ToolResultMessage.content")
        if isinstance(content, str):
            content = (TextBlock(content),)
        object.__setattr__(self, "content", content)


Message = Union[UserMessage, AssistantMessage, ToolResultMessage]

_MESSAGE_TYPES = (UserMessage, AssistantMessage, ToolResultMessage)


def coerce_message(raw: Message | Mapping[str, Any], *, index: int = 0) -> Message:
    """Return ``raw`` as a message, translating wire mappings.

    Raises :class:`MessageShapeError` when the role discriminator is missing
    or unknown.
    """

    if isinstance(raw, _MESSAGE_TYPES):
        return raw
    if not isinstance(raw, Mapping):
        msg = f"message at index {index} must be a mapping or message instance"
        raise MessageShapeError(msg)

    role = raw.get("role")
    if not isinstance(role, str):
        msg = f"message at index {index} is missing a required string 'role' field"
        raise MessageShapeError(msg)

    try:
        return _message_from_wire(raw, role, index=index)
    except MessageShapeError:
        raise
    except (TypeError, ValueError) as exc:
        msg = f"message at index {index} is malformed: {exc}"
        raise MessageShapeError(msg) from exc


def _message_from_wire(raw: Mapping[str, Any], role: str, *, index: int) -> Message:
    if role == MessageRole.USER.value:
        return UserMessage(content=_content_from_wire(raw.get("content"), index=index))

    if role == MessageRole.ASSISTANT.value:
        content = raw.get("content")
        tool_calls = raw.get("tool_calls", raw.get("toolCalls"))
        return AssistantMessage(
            content=None if content is None else _content_from_wire(content, index=index),
            tool_calls=(
                tuple(_tool_call_from_wire(item, index=index) for item in tool_calls)
                if tool_calls
                else None
            ),
        )

    if role == MessageRole.TOOL_RESULT.value:
        return ToolResultMessage(
            tool_call_id=raw.get("toolCallId", raw.get("tool_call_id")),  # type: ignore[arg-type]
            tool_name=raw.get("toolName", raw.get("tool_name")),  # type: ignore[arg-type]
            content=_content_from_wire(raw.get("content", ()), index=index),  # type: ignore[arg-type]
            is_error=bool(raw.get("isError", raw.get("is_error", False))),
        )

    msg = f"message at index {index} has unsupported role '{role}'"
    raise MessageShapeError(msg)


def coerce_messages(raw: Sequence[Message | Mapping[str, Any]]) -> tuple[Message, ...]:
    if isinstance(raw, (str, bytes, bytearray)) or not isinstance(raw, Sequence):
        msg = "messages must be a sequence"
        raise MessageShapeError(msg)
    return tuple(coerce_message(item, index=index) for index, item in enumerate(raw))


def message_to_dict(message: Message) -> dict[str, Any]:
    """Return the wire representation of ``message``."""

    if isinstance(message, UserMessage):
        return {"role": message.role.value, "content": _content_to_wire(message.content)}

    if isinstance(message, AssistantMessage):
        payload: dict[str, Any] = {
            "role": message.role.value,
            "content": None if message.content is None else _content_to_wire(message.content),
        }
        if message.tool_calls:
            payload["toolCalls"] = [call.to_dict() for call in message.tool_calls]
        return payload

    if isinstance(message, ToolResultMessage):
        return {
            "role": message.role.value,
            "toolCallId": message.tool_call_id,
            "toolName": message.tool_name,
            "content": [block_to_dict(block) for block in message.content],
            "isError": message.is_error,
        }

    msg = f"unsupported message type: {type(message).__name__}"
    raise MessageShapeError(msg)


def block_to_dict(block: ContentBlock) -> dict[str, Any]:
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    return {"type": "image", "data": block.data, "mimeType": block.mime_type}


def text_of(content: str | tuple[ContentBlock, ...] | None) -> str:
    """Return the first text carried by ``content`` (empty when there is none)."""

    if content is None:
        return ""
    if isinstance(content, str):
        return content
    for block in content:
        if isinstance(block, TextBlock):
            return block.text
    return ""


def _coerce_content(content: Any, *, path: str) -> str | tuple[ContentBlock, ...]:
    if isinstance(content, str):
        return content
    if not isinstance(content, Sequence):
        msg = f"{path} must be a string or a sequence of content blocks"
        raise TypeError(msg)
    blocks = tuple(content)
    for block in blocks:
        if not isinstance(block, (TextBlock, ImageBlock)):
            msg = f"{path} must only contain TextBlock or ImageBlock values"
            raise TypeError(msg)
    return blocks


def _content_from_wire(content: Any, *, index: int) -> str | tuple[ContentBlock, ...]:
    if isinstance(content, str):
        return content
    if content is None or not isinstance(content, Sequence):
        msg = f"message at index {index} has invalid content"
        raise MessageShapeError(msg)

    blocks: list[ContentBlock] = []
    for block in content:
        if isinstance(block, (TextBlock, ImageBlock)):
            blocks.append(block)
            continue
        if not isinstance(block, Mapping):
            msg = f"message at index {index} has a non-mapping content block"
            raise MessageShapeError(msg)
        block_type = block.get("type")
        if block_type == "text":
            blocks.append(TextBlock(text=block.get("text", "")))
        elif block_type == "image":
            blocks.append(
                ImageBlock(
                    data=block.get("data", ""),
                    mime_type=block.get("mimeType", block.get("mime_type", "")),
                )
            )
        else:
            msg = f"message at index {index} has unsupported content block type {block_type!r}"
            raise MessageShapeError(msg)
    return tuple(blocks)


def _content_to_wire(content: str | tuple[ContentBlock, ...]) -> str | list[dict[str, Any]]:
    if isinstance(content, str):
        return content
    return [block_to_dict(block) for block in content]


def _tool_call_from_wire(payload: Any, *, index: int) -> ToolCall:
    if isinstance(payload, ToolCall):
        return payload
    if not isinstance(payload, Mapping):
        msg = f"message at index {index} has a non-mapping tool call"
        raise MessageShapeError(msg)
    try:
        return ToolCall(
            id=payload.get("id"),  # type: ignore[arg-type]
            name=payload.get("name"),  # type: ignore[arg-type]
            arguments=parse_json_object(
                payload.get("arguments", {}), path=f"messages[{index}].tool_calls.arguments"
            ),
        )
    except (AdapterError, ValueError) as exc:
        msg = f"message at index {index} has an invalid tool call: {exc}"
        raise MessageShapeError(msg) from exc
