"""Tool schemas, the tool catalog, and tool-argument helpers.

Tool implementations live outside patchbay; this module covers the wire
boundaries with them: describing a tool to a model backend, reading its call
arguments, and feeding its result back into the conversation. Tools and tool
factories are collected in a :class:`ToolRegistry`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
import json
import logging
import math
import re
from typing import Any

from .core.errors import ToolAuthorizationError, ToolInputError
from .core.message import ContentBlock, ImageBlock, TextBlock, ToolCall, ToolResultMessage
from .core.toolbridge import (
    GEMINI_PROVIDERS,
    GEMINI_UNSUPPORTED_KEYWORDS,
    ToolSchema,
    clean_schema_for_gemini,
    extract_tool_schema,
    extract_tool_schemas,
    normalize_schema,
    tool_schemas_to_openai,
)

LOGGER = logging.getLogger(__name__)

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


@dataclass(frozen=True, slots=True)
class ToolResult:
    """What a tool returns: content blocks for the model plus optional details."""

    content: tuple[ContentBlock, ...]
    details: Any = None

    def __post_init__(self) -> None:
        blocks = tuple(self.content)
        for block in blocks:
            if not isinstance(block, (TextBlock, ImageBlock)):
                msg = "tool result content must only contain TextBlock or ImageBlock values"
                raise TypeError(msg)
        object.__setattr__(self, "content", blocks)

    @property
    def text(self) -> str:
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))


def text_result(text: str, details: Any = None) -> ToolResult:
    return ToolResult(content=(TextBlock(text),), details=details)


def json_result(payload: Any) -> ToolResult:
    """Return ``payload`` as pretty-printed JSON text; ``details`` keeps the value."""

    return ToolResult(content=(TextBlock(json.dumps(payload, indent=2)),), details=payload)


def error_result(tool_name: str, error: str) -> ToolResult:
    """Return a ``{"status": "error", ...}`` result the model can tell apart from success."""

    details = {"status": "error", "tool": tool_name, "error": error}
    return ToolResult(content=(TextBlock(json.dumps(details, separators=(",", ":"))),), details=details)


def image_result(
    *,
    label: str,
    data: str,
    mime_type: str,
    path: str | None = None,
    extra_text: str | None = None,
    details: Mapping[str, Any] | None = None,
) -> ToolResult:
    blocks: list[ContentBlock] = []
    if path:
        blocks.append(TextBlock(f"MEDIA:{path}"))
    if extra_text:
        blocks.append(TextBlock(extra_text))
    blocks.append(ImageBlock(data=data, mime_type=mime_type))
    return ToolResult(
        content=tuple(blocks),
        details=dict(details) if details is not None else {"label": label, "path": path},
    )


def tool_result_message(tool_call: ToolCall, result: ToolResult | str, *, is_error: bool = False) -> ToolResultMessage:
    """Build the history message answering ``tool_call``.

    The id and name are copied from the tool call so the correlation id
    always matches the ``toolcall_end`` event that requested it.
    """

    if isinstance(result, str):
        result = text_result(result)
    return ToolResultMessage(
        tool_call_id=tool_call.id,
        tool_name=tool_call.name,
        content=result.content,
        is_error=is_error,
    )


def tool_result_messages(
    results: Sequence[tuple[ToolCall, ToolResult | str]],
) -> tuple[ToolResultMessage, ...]:
    return tuple(tool_result_message(call, result) for call, result in results)


@dataclass(frozen=True, slots=True)
class ToolMeta:
    """Catalog entry for a registered tool or tool factory."""

    id: str
    label: str = ""
    description: str = ""
    source: str = "core"
    plugin_id: str | None = None
    optional: bool = False


@dataclass(frozen=True, slots=True)
class _ToolEntry:
    meta: ToolMeta
    tool: Any
    is_factory: bool


ToolErrorHandler = Callable[[ToolMeta, Exception], None]


class ToolRegistry:
    """Catalog of tools and tool factories keyed by tool id.

    Direct tools are handed back as registered. Factories are called with a
    caller-supplied context on every resolve and may return one tool, a
    sequence of tools, or ``None`` to contribute nothing. Registering an id
    that is already present replaces the earlier entry.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _ToolEntry] = {}

    def register(
        self,
        tool: Any,
        *,
        tool_id: str | None = None,
        label: str | None = None,
        description: str | None = None,
        source: str = "core",
        plugin_id: str | None = None,
        optional: bool = False,
    ) -> ToolMeta:
        tool_id = tool_id or getattr(tool, "name", None)
        if not tool_id:
            msg = "tool must have a name or be registered with an explicit id"
            raise TypeError(msg)
        meta = ToolMeta(
            id=tool_id,
            label=label or getattr(tool, "label", None) or tool_id,
            description=description if description is not None else getattr(tool, "description", "") or "",
            source=source,
            plugin_id=plugin_id,
            optional=optional,
        )
        self._store(_ToolEntry(meta=meta, tool=tool, is_factory=False))
        return meta

    def register_factory(self, factory: Callable[[Any], Any], meta: ToolMeta) -> None:
        if not callable(factory):
            msg = f"tool factory '{meta.id}' is not callable"
            raise TypeError(msg)
        self._store(_ToolEntry(meta=meta, tool=factory, is_factory=True))

    def resolve_all(self, context: Any = None, on_error: ToolErrorHandler | None = None) -> list[Any]:
        """Return every tool, invoking factories with ``context``.

        A factory that raises is skipped and reported to ``on_error``; without
        a handler the failure is logged.
        """

        tools: list[Any] = []
        for entry in self._entries.values():
            tools.extend(self._resolve_entry(entry, context, on_error))
        return tools

    def resolve(self, tool_id: str, context: Any = None, on_error: ToolErrorHandler | None = None) -> Any | None:
        entry = self._entries.get(tool_id)
        if entry is None:
            return None
        resolved = self._resolve_entry(entry, context, on_error)
        return resolved[0] if resolved else None

    def list(self) -> list[ToolMeta]:
        return [entry.meta for entry in self._entries.values()]

    def has(self, tool_id: str) -> bool:
        return tool_id in self._entries

    def unregister(self, tool_id: str) -> bool:
        return self._entries.pop(tool_id, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    @property
    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._entries

    def _store(self, entry: _ToolEntry) -> None:
        if entry.meta.id in self._entries:
            LOGGER.debug("replacing tool %s", entry.meta.id)
        self._entries[entry.meta.id] = entry

    def _resolve_entry(self, entry: _ToolEntry, context: Any, on_error: ToolErrorHandler | None) -> list[Any]:
        if not entry.is_factory:
            return [entry.tool]

        try:
            result = entry.tool(context if context is not None else {})
        except Exception as exc:
            if on_error is None:
                LOGGER.warning("tool factory %s failed: %s", entry.meta.id, exc, exc_info=True)
            else:
                on_error(entry.meta, exc)
            return []

        if result is None:
            return []
        if isinstance(result, (list, tuple)):
            return list(result)
        return [result]


def _snake_case(key: str) -> str:
    key = _ACRONYM_BOUNDARY.sub(r"\1_\2", key)
    return _WORD_BOUNDARY.sub(r"\1_\2", key).lower()


def _read_raw(params: Mapping[str, Any], key: str) -> Any:
    if key in params:
        return params[key]
    snake = _snake_case(key)
    if snake != key and snake in params:
        return params[snake]
    return None


def read_string_param(
    params: Mapping[str, Any],
    key: str,
    *,
    required: bool = False,
    trim: bool = True,
    label: str | None = None,
    allow_empty: bool = False,
) -> str | None:
    """Read a string argument by camelCase or snake_case key; numbers are stringified."""

    label = label or key
    raw = _read_raw(params, key)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw)
    if not isinstance(raw, str):
        if required:
            raise ToolInputError(f"{label} required")
        return None

    value = raw.strip() if trim else raw
    if not value and not allow_empty:
        if required:
            raise ToolInputError(f"{label} required")
        return None
    return value


def read_number_param(
    params: Mapping[str, Any],
    key: str,
    *,
    required: bool = False,
    integer: bool = False,
    label: str | None = None,
) -> float | int | None:
    label = label or key
    raw = _read_raw(params, key)
    if raw is None:
        if required:
            raise ToolInputError(f"{label} required")
        return None

    number: float | None = None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        number = raw
    elif isinstance(raw, str):
        try:
            number = float(raw)
        except ValueError:
            number = None
    if number is None or not math.isfinite(number):
        raise ToolInputError(f"{label} must be a number")

    return math.floor(number) if integer else number


def read_boolean_param(
    params: Mapping[str, Any],
    key: str,
    default: bool = False,
    *,
    required: bool = False,
    label: str | None = None,
) -> bool:
    """Read a boolean argument; the strings ``"true"`` and ``"1"`` count as true."""

    raw = _read_raw(params, key)
    if raw is None:
        if required:
            raise ToolInputError(f"{label or key} required")
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.lower() == "true" or raw == "1"
    return bool(raw)


def read_string_array_param(
    params: Mapping[str, Any],
    key: str,
    *,
    required: bool = False,
    label: str | None = None,
) -> list[str] | None:
    label = label or key
    raw = _read_raw(params, key)
    if raw is None:
        if required:
            raise ToolInputError(f"{label} required")
        return None
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, (list, tuple)):
        return [str(item) for item in raw]
    raise ToolInputError(f"{label} must be a string or string array")


def assert_required_params(params: Mapping[str, Any], required: Sequence[str]) -> None:
    for key in required:
        if _read_raw(params, key) in (None, ""):
            raise ToolInputError(f"{key} required")

__all__ = [
    "GEMINI_PROVIDERS",
    "GEMINI_UNSUPPORTED_KEYWORDS",
    "ToolAuthorizationError",
    "ToolInputError",
    "ToolMeta",
    "ToolRegistry",
    "ToolResult",
    "ToolSchema",
    "assert_required_params",
    "clean_schema_for_gemini",
    "error_result",
    "extract_tool_schema",
    "extract_tool_schemas",
    "image_result",
    "json_result",
    "normalize_schema",
    "read_boolean_param",
    "read_number_param",
    "read_string_array_param",
    "read_string_param",
    "text_result",
    "tool_result_message",
    "tool_result_messages",
    "tool_schemas_to_openai",
]
