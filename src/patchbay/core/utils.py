"""Pure JSON and mapping helpers shared by the core modules."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import json
import math
from types import MappingProxyType
from typing import Any

from .errors import AdapterError


def ensure_mapping(value: Any, *, path: str) -> Mapping[str, Any]:
    """Return ``value`` as a mapping, accepting pydantic-style and plain objects."""

    if isinstance(value, Mapping):
        return value

    if hasattr(value, "model_dump"):
        mapping = value.model_dump()
        if isinstance(mapping, Mapping):
            return mapping

    if hasattr(value, "dict"):
        mapping = value.dict()
        if isinstance(mapping, Mapping):
            return mapping

    if hasattr(value, "__dict__"):
        return vars(value)

    msg = f"{path} must be a mapping"
    raise AdapterError(msg)


def ensure_json_compatible(value: Any, *, path: str) -> None:
    if isinstance(value, Mapping):
        for key, inner in value.items():
            if not isinstance(key, str) or not key:
                msg = f"{path} keys must be non-empty strings"
                raise AdapterError(msg)
            ensure_json_compatible(inner, path=f"{path}.{key}")
        return

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        for index, item in enumerate(value):
            ensure_json_compatible(item, path=f"{path}[{index}]")
        return

    if isinstance(value, (bool, type(None), str)):
        return

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            msg = f"{path} contains non-finite float values"
            raise AdapterError(msg)
        return

    msg = f"{path} contains unsupported value type {type(value).__name__}"
    raise AdapterError(msg)


def freeze_json(value: Any) -> Any:
    """Return a read-only copy of a JSON structure (dicts become mapping proxies)."""

    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze_json(inner) for key, inner in value.items()})

    if isinstance(value, (list, tuple)):
        return tuple(freeze_json(inner) for inner in value)

    return value


def thaw_json(value: Any) -> Any:
    """Inverse of :func:`freeze_json`: plain dicts and lists again."""

    if isinstance(value, Mapping):
        return {key: thaw_json(inner) for key, inner in value.items()}

    if isinstance(value, (tuple, list)):
        return [thaw_json(inner) for inner in value]

    return value


def sanitize_json_object(raw: Mapping[str, Any], *, path: str) -> dict[str, Any]:
    """Validate ``raw`` and return a plain JSON round-tripped copy."""

    plain = thaw_json(raw)
    ensure_json_compatible(plain, path=path)
    try:
        sanitized = json.loads(json.dumps(plain, allow_nan=False))
    except (TypeError, ValueError) as exc:  # pragma: no cover - guarded above
        msg = f"{path} must contain JSON serializable data"
        raise AdapterError(msg) from exc
    return sanitized


def parse_json_object(raw: Any, *, path: str) -> Mapping[str, Any]:
    """Parse tool-call arguments into a frozen JSON object.

    ``raw`` may already be a mapping or a JSON string; an empty string is
    treated as ``{}``.
    """

    if isinstance(raw, Mapping):
        mapping = raw
    elif isinstance(raw, str):
        try:
            parsed = json.loads(raw or "{}")
        except json.JSONDecodeError as exc:
            msg = f"{path} must contain valid JSON"
            raise AdapterError(msg) from exc
        if not isinstance(parsed, Mapping):
            msg = f"{path} must decode to a JSON object"
            raise AdapterError(msg)
        mapping = parsed
    else:
        msg = f"{path} must be a mapping or JSON string"
        raise AdapterError(msg)

    return freeze_json(sanitize_json_object(mapping, path=path))
