"""Runtime helpers for consuming connector streams."""

from .loop import SessionTranscript, StreamRuntime, collect_response
from .state import AssistantResponse, ResponseState

__all__ = [
    "AssistantResponse",
    "ResponseState",
    "SessionTranscript",
    "StreamRuntime",
    "collect_response",
]
