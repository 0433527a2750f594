"""Connector record shared by built-in and plugin-provided backends."""

from __future__ import annotations

from collections.abc import AsyncIterable, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
import logging
from types import MappingProxyType
from typing import Any, Union

from ..core.context import StreamContext
from ..core.errors import AdapterError
from ..core.model import ModelDescriptor
from ..core.signal import AbortSignal
from ..core.stream import BaseStreamIterator, SourceStream, StreamEvent

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StreamOptions:
    """Per-call options forwarded to a connector."""

    temperature: float | None = None
    max_tokens: int | None = None
    signal: AbortSignal | None = None
    api_key: str | None = None
    headers: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        if self.temperature is not None and not 0 <= self.temperature <= 2:
            msg = "temperature must be between 0 and 2"
            raise ValueError(msg)
        if self.max_tokens is not None and (
            isinstance(self.max_tokens, bool) or not isinstance(self.max_tokens, int) or self.max_tokens <= 0
        ):
            msg = "max_tokens must be a positive integer"
            raise ValueError(msg)
        if self.headers is not None:
            object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def to_dict(self) -> dict[str, Any]:
        """Return the set options in the camelCase form backends expect."""

        payload: dict[str, Any] = {}
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["maxTokens"] = self.max_tokens
        if self.api_key is not None:
            payload["apiKey"] = self.api_key
        if self.headers:
            payload["headers"] = dict(self.headers)
        if self.signal is not None:
            payload["signal"] = self.signal
        return payload


StreamSource = Union[
    BaseStreamIterator,
    AsyncIterable[StreamEvent],
    Awaitable[AsyncIterable[StreamEvent]],
]
StreamFunction = Callable[[ModelDescriptor, StreamContext, StreamOptions], StreamSource]


@dataclass(frozen=True, slots=True)
class Connector:
    """A named backend: its models, credential variables and streaming operation."""

    id: str
    label: str
    provider: str
    api: str
    stream_fn: StreamFunction = field(repr=False, compare=False)
    models: tuple[ModelDescriptor, ...] = ()
    env_vars: tuple[str, ...] = ()
    requires_auth: bool = True

    def __post_init__(self) -> None:
        for name in ("id", "label", "provider", "api"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                msg = f"connector {name} must be a non-empty string"
                raise ValueError(msg)
        if not callable(self.stream_fn):
            msg = f"connector '{self.id}' stream_fn must be callable"
            raise TypeError(msg)

        models = tuple(self.models)
        for model in models:
            if not isinstance(model, ModelDescriptor):
                msg = f"connector '{self.id}' models must be ModelDescriptor values"
                raise TypeError(msg)
        object.__setattr__(self, "models", models)
        object.__setattr__(self, "env_vars", tuple(self.env_vars))

    def find_model(self, model_id: str) -> ModelDescriptor | None:
        for model in self.models:
            if model.id == model_id:
                return model
        return None

    def stream(
        self,
        model: ModelDescriptor | str,
        context: StreamContext | Mapping[str, Any],
        options: StreamOptions | None = None,
    ) -> BaseStreamIterator:
        """Start a streaming call and return its event iterator.

        Raises :class:`StreamAbortedError` immediately when ``options.signal``
        is already aborted; no event is produced in that case. Shape errors in
        ``context`` and unknown model ids are also raised here, before the
        backend is invoked.
        """

        options = options or StreamOptions()
        if options.signal is not None:
            options.signal.raise_if_aborted()

        descriptor = self._resolve_model(model)
        if not isinstance(context, StreamContext):
            context = StreamContext.from_dict(context)

        LOGGER.debug("streaming %s via connector %s", descriptor.id, self.id)
        source = self.stream_fn(descriptor, context, options)
        if isinstance(source, BaseStreamIterator):
            return source
        return SourceStream(source, signal=options.signal)

    def _resolve_model(self, model: ModelDescriptor | str) -> ModelDescriptor:
        if isinstance(model, ModelDescriptor):
            return model
        found = self.find_model(model)
        if found is None:
            msg = f"connector '{self.id}' has no model '{model}'"
            raise AdapterError(msg)
        return found
