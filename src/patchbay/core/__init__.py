"""Core data structures and stream primitives for patchbay."""

from __future__ import annotations

from .errors import (
    AdapterError,
    CredentialNotFoundError,
    MessageShapeError,
    PluginError,
    StreamAbortedError,
    ToolAuthorizationError,
    ToolInputError,
)
from .message import (
    AssistantMessage,
    ImageBlock,
    Message,
    MessageRole,
    TextBlock,
    ToolCall,
    ToolResultMessage,
    UserMessage,
    coerce_message,
    message_to_dict,
)
from .toolbridge import ToolSchema
from .context import StreamContext
from .model import ModelCost, ModelDescriptor, deserialize_model, serialize_model
from .signal import AbortSignal
from .stream import (
    BaseStreamIterator,
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
    event_to_dict,
    replay_stream,
    validate_event_sequence,
)

__all__ = [
    "AbortSignal",
    "AdapterError",
    "AssistantMessage",
    "BaseStreamIterator",
    "CredentialNotFoundError",
    "DoneEvent",
    "ErrorEvent",
    "ImageBlock",
    "Message",
    "MessageRole",
    "MessageShapeError",
    "ModelCost",
    "ModelDescriptor",
    "PluginError",
    "SourceStream",
    "StartEvent",
    "StopReason",
    "StreamAbortedError",
    "StreamContext",
    "StreamEvent",
    "TextBlock",
    "TextDelta",
    "TextEnd",
    "ThinkingDelta",
    "ThinkingEnd",
    "ToolAuthorizationError",
    "ToolCall",
    "ToolCallDelta",
    "ToolCallEnd",
    "ToolCallStart",
    "ToolInputError",
    "ToolResultMessage",
    "ToolSchema",
    "Usage",
    "UserMessage",
    "coerce_message",
    "deserialize_model",
    "event_to_dict",
    "message_to_dict",
    "replay_stream",
    "serialize_model",
    "validate_event_sequence",
]
