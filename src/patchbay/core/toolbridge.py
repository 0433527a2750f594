"""Mapping helpers between patchbay tool schemas and provider schemas."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
import json
import re
from typing import Any

from .errors import AdapterError
from .message import ToolCall
from .utils import freeze_json, sanitize_json_object, thaw_json

_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")

# Keywords Google's function-calling endpoints reject in parameter schemas.
GEMINI_UNSUPPORTED_KEYWORDS = frozenset(
    {
        "patternProperties",
        "additionalProperties",
        "$schema",
        "$id",
        "$ref",
        "$defs",
        "definitions",
        "examples",
        "minLength",
        "maxLength",
        "minimum",
        "maximum",
        "multipleOf",
        "pattern",
        "format",
        "minItems",
        "maxItems",
        "uniqueItems",
        "minProperties",
        "maxProperties",
    }
)

GEMINI_PROVIDERS = frozenset({"google", "google-generative-ai", "google-vertex"})


@dataclass(frozen=True, slots=True)
class ToolSchema:
    """A tool as described to a model backend."""

    name: str
    description: str
    input_schema: Mapping[str, Any]

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not _NAME_PATTERN.fullmatch(self.name):
            msg = "tool name must match ^[a-zA-Z0-9_-]{1,64}$"
            raise AdapterError(msg)

        if not isinstance(self.description, str):
            msg = "tool description must be a string"
            raise AdapterError(msg)

        normalized = normalize_schema(self.input_schema)
        sanitized = sanitize_json_object(
            normalized, path=f"ToolSchema('{self.name}').input_schema"
        )

        properties = sanitized.get("properties")
        if not isinstance(properties, dict):
            msg = "tool input schema must include an object 'properties' mapping"
            raise AdapterError(msg)

        required = sanitized.get("required")
        if required is not None:
            if not isinstance(required, list):
                msg = "tool input schema 'required' must be a list of strings"
                raise AdapterError(msg)
            for index, item in enumerate(required):
                if not isinstance(item, str) or not item:
                    msg = f"required parameter names must be non-empty strings (index {index})"
                    raise AdapterError(msg)

        object.__setattr__(self, "description", self.description.strip())
        object.__setattr__(self, "input_schema", freeze_json(sanitized))

    def to_dict(self) -> dict[str, Any]:
        """Return the ``{name, description, input_schema}`` wire shape."""

        return {
            "name": self.name,
            "description": self.description,
            "input_schema": thaw_json(self.input_schema),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ToolSchema:
        if not isinstance(payload, Mapping):
            msg = "tool schema payload must be a mapping"
            raise AdapterError(msg)
        schema = payload.get("input_schema", payload.get("parameters"))
        return cls(
            name=payload.get("name"),  # type: ignore[arg-type]
            description=payload.get("description", ""),
            input_schema=schema if schema is not None else {},
        )


def normalize_schema(schema: Any) -> dict[str, Any]:
    """Coerce ``schema`` into a ``type: "object"`` JSON schema with ``properties``."""

    if not isinstance(schema, Mapping):
        return {"type": "object", "properties": {}}

    normalized = dict(schema)
    if normalized.get("type") != "object":
        normalized["type"] = "object"
        normalized["properties"] = normalized.get("properties") or {}
    elif normalized.get("properties") is None:
        normalized["properties"] = {}
    return normalized


def clean_schema_for_gemini(schema: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``schema`` without keywords Gemini rejects."""

    return _deep_clean(schema, GEMINI_UNSUPPORTED_KEYWORDS)


def _deep_clean(value: Mapping[str, Any], banned: frozenset[str]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, inner in value.items():
        if key in banned:
            continue
        if key == "properties" and isinstance(inner, Mapping):
            # Keys here are parameter names, not schema keywords.
            cleaned[key] = {
                name: _deep_clean(prop, banned) if isinstance(prop, Mapping) else thaw_json(prop)
                for name, prop in inner.items()
            }
        elif isinstance(inner, Mapping):
            cleaned[key] = _deep_clean(inner, banned)
        elif isinstance(inner, (list, tuple)):
            cleaned[key] = [
                _deep_clean(item, banned) if isinstance(item, Mapping) else thaw_json(item)
                for item in inner
            ]
        else:
            cleaned[key] = inner
    return cleaned


def extract_tool_schema(tool: Any) -> ToolSchema:
    """Build a :class:`ToolSchema` from a schema, a mapping, or a tool object.

    Tool objects expose ``name``, ``description`` and ``parameters`` (or
    ``input_schema``) attributes.
    """

    if isinstance(tool, ToolSchema):
        return tool
    if isinstance(tool, Mapping):
        return ToolSchema.from_dict(tool)

    name = getattr(tool, "name", None)
    description = getattr(tool, "description", "") or ""
    parameters = getattr(tool, "parameters", None)
    if parameters is None:
        parameters = getattr(tool, "input_schema", None)
    return ToolSchema(name=name, description=description, input_schema=parameters or {})  # type: ignore[arg-type]


def extract_tool_schemas(tools: Iterable[Any], provider: str | None = None) -> list[ToolSchema]:
    """Extract schemas for ``tools``, applying provider-specific cleaning."""

    schemas = [extract_tool_schema(tool) for tool in tools]
    if provider not in GEMINI_PROVIDERS:
        return schemas
    return [
        ToolSchema(
            name=schema.name,
            description=schema.description,
            input_schema=clean_schema_for_gemini(schema.input_schema),
        )
        for schema in schemas
    ]


def tool_schemas_to_openai(tool_schemas: Sequence[ToolSchema]) -> list[dict[str, Any]]:
    """Convert tool schemas to OpenAI's chat ``tools`` payload."""

    if isinstance(tool_schemas, (str, bytes, bytearray)):
        msg = "tools must be provided as a sequence of ToolSchema instances"
        raise AdapterError(msg)

    normalized_tools: list[dict[str, Any]] = []
    seen_names: set[str] = set()

    for index, schema in enumerate(tool_schemas):
        if not isinstance(schema, ToolSchema):
            msg = f"tools[{index}] must be a ToolSchema"
            raise AdapterError(msg)
        if schema.name in seen_names:
            msg = f"duplicate tool name '{schema.name}'"
            raise AdapterError(msg)
        seen_names.add(schema.name)

        function_payload: dict[str, Any] = {
            "name": schema.name,
            "parameters": thaw_json(schema.input_schema),
        }
        if schema.description:
            function_payload["description"] = schema.description

        normalized_tools.append({"type": "function", "function": function_payload})

    return normalized_tools


def tool_call_to_openai(tool_call: ToolCall) -> dict[str, Any]:
    """Convert a :class:`ToolCall` into an OpenAI assistant ``tool_calls`` entry."""

    return {
        "id": tool_call.id,
        "type": "function",
        "function": {
            "name": tool_call.name,
            "arguments": json.dumps(thaw_json(tool_call.arguments), allow_nan=False),
        },
    }
