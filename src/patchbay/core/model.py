"""Model descriptors exposed by connectors."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
import math
from types import MappingProxyType
from typing import Any

_MODALITIES = frozenset({"text", "image"})


@dataclass(frozen=True, slots=True)
class ModelCost:
    """Price per million tokens for each token class."""

    input: float
    output: float
    cache_read: float
    cache_write: float

    def __post_init__(self) -> None:
        for name in ("input", "output", "cache_read", "cache_write"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                msg = f"cost.{name} must be a number"
                raise TypeError(msg)
            if not math.isfinite(value) or value < 0:
                msg = f"cost.{name} must be a finite, non-negative number"
                raise ValueError(msg)


FREE = ModelCost(input=0, output=0, cache_read=0, cache_write=0)


@dataclass(frozen=True, slots=True)
class ModelDescriptor:
    """One addressable model; ``id`` is unique only within its connector."""

    id: str
    api: str
    provider: str
    name: str | None = None
    base_url: str | None = None
    reasoning: bool = False
    input: tuple[str, ...] = ("text",)
    cost: ModelCost = FREE
    context_window: int = 200_000
    max_tokens: int = 8_192
    headers: Mapping[str, str] | None = None
    compat: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("id", "api", "provider"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                msg = f"model {name} must be a non-empty string"
                raise ValueError(msg)

        modalities = tuple(self.input)
        unknown = set(modalities) - _MODALITIES
        if unknown:
            joined = ", ".join(sorted(unknown))
            msg = f"unsupported input modalities: {joined}"
            raise ValueError(msg)
        object.__setattr__(self, "input", modalities)

        for name in ("context_window", "max_tokens"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                msg = f"model {name} must be a positive integer"
                raise ValueError(msg)

        if self.headers is not None:
            object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        object.__setattr__(self, "compat", MappingProxyType(dict(self.compat)))

    @property
    def display_name(self) -> str:
        return self.name or self.id


def serialize_model(model: ModelDescriptor) -> dict[str, Any]:
    """Return the snake_case storage form of ``model``.

    Unset optional fields are omitted rather than written as ``None`` so the
    result can be merged into an existing row without clobbering columns.
    """

    result: dict[str, Any] = {
        "id": model.id,
        "api": model.api,
        "provider": model.provider,
    }
    if model.name is not None:
        result["name"] = model.name
    if model.base_url is not None:
        result["base_url"] = model.base_url
    result["reasoning"] = model.reasoning
    result["input"] = list(model.input)
    result["cost"] = {
        "input": model.cost.input,
        "output": model.cost.output,
        "cache_read": model.cost.cache_read,
        "cache_write": model.cost.cache_write,
    }
    result["context_window"] = model.context_window
    result["max_tokens"] = model.max_tokens
    if model.headers is not None:
        result["headers"] = dict(model.headers)
    if model.compat:
        result["compat"] = dict(model.compat)
    return result


def deserialize_model(payload: Mapping[str, Any]) -> ModelDescriptor:
    """Inverse of :func:`serialize_model`; missing fields take their defaults."""

    options: dict[str, Any] = {}
    for key in ("name", "base_url", "reasoning", "context_window", "max_tokens", "headers", "compat"):
        if payload.get(key) is not None:
            options[key] = payload[key]

    modalities = payload.get("input")
    if modalities is not None:
        if isinstance(modalities, str) or not isinstance(modalities, Sequence):
            msg = "model input must be a list of modalities"
            raise TypeError(msg)
        options["input"] = tuple(modalities)

    cost = payload.get("cost")
    if cost is not None:
        options["cost"] = ModelCost(
            input=cost["input"],
            output=cost["output"],
            cache_read=cost["cache_read"],
            cache_write=cost["cache_write"],
        )

    return ModelDescriptor(
        id=payload.get("id"),  # type: ignore[arg-type]
        api=payload.get("api"),  # type: ignore[arg-type]
        provider=payload.get("provider"),  # type: ignore[arg-type]
        **options,
    )
