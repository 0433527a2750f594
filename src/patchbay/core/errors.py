"""Custom exception types used by patchbay."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class AdapterError(RuntimeError):
    """Raised when a connector or adapter cannot fulfil a request."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class StreamAbortedError(AdapterError):
    """Raised when an abort signal fires before or during a streaming call."""

    kind = "abort"

    def __init__(self, message: str = "stream aborted", *, reason: Any = None) -> None:
        super().__init__(message)
        self.reason = reason
        if isinstance(reason, BaseException):
            self.__cause__ = reason


class CredentialNotFoundError(AdapterError):
    """Raised when a connector requires credentials and none can be resolved."""

    def __init__(self, provider: str, env_vars: Sequence[str] = ()) -> None:
        self.provider = provider
        self.env_vars = tuple(env_vars)
        checked = ", ".join(self.env_vars) if self.env_vars else "none"
        super().__init__(
            f"no credentials found for provider '{provider}' (checked: {checked})"
        )


class MessageShapeError(AdapterError, TypeError):
    """Raised when a context message does not have the expected shape."""


class PluginError(AdapterError):
    """Raised when a plugin entry point cannot be resolved or registered."""


class ToolInputError(ValueError):
    """Raised by a tool when its call arguments are missing or malformed."""

    status = 400


class ToolAuthorizationError(ToolInputError):
    """Raised by a tool when the caller is not allowed to run it."""

    status = 403
