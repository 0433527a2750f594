"""Uniform streaming access to LLM backends.

The package catalogs model backends ("connectors") in an explicit registry,
resolves their credentials, and delivers every backend's streaming response as
the same ordered sequence of canonical events, including assembled and
correlated tool calls.
"""

from __future__ import annotations

from .auth import (
    ApiKeyAuth,
    AuthMode,
    AwsSdkAuth,
    MixedAuth,
    NoAuth,
    OAuthAuth,
    ResolvedAuth,
    TokenAuth,
    UnknownAuth,
    require_auth,
    resolve_auth,
)
from .config import PatchbayConfig
from .connectors import (
    Connector,
    ConnectorRegistry,
    StreamOptions,
    adapt_events,
    build_connector,
    build_openai_connector,
    create_registry,
    debug_connector,
)
from .core import (
    AbortSignal,
    AdapterError,
    CredentialNotFoundError,
    MessageShapeError,
    ModelDescriptor,
    PluginError,
    StopReason,
    StreamAbortedError,
    StreamContext,
    StreamEvent,
    ToolSchema,
    replay_stream,
)
from .runtime import AssistantResponse, StreamRuntime, collect_response
from .tools import ToolRegistry

__all__ = [
    "AbortSignal",
    "AdapterError",
    "ApiKeyAuth",
    "AssistantResponse",
    "AuthMode",
    "AwsSdkAuth",
    "Connector",
    "ConnectorRegistry",
    "CredentialNotFoundError",
    "MessageShapeError",
    "MixedAuth",
    "ModelDescriptor",
    "NoAuth",
    "OAuthAuth",
    "PatchbayConfig",
    "PluginError",
    "ResolvedAuth",
    "StopReason",
    "StreamAbortedError",
    "StreamContext",
    "StreamEvent",
    "StreamOptions",
    "StreamRuntime",
    "TokenAuth",
    "ToolRegistry",
    "ToolSchema",
    "UnknownAuth",
    "adapt_events",
    "build_connector",
    "build_openai_connector",
    "collect_response",
    "create_registry",
    "debug_connector",
    "replay_stream",
    "require_auth",
    "resolve_auth",
]

__version__ = "0.1.0"
