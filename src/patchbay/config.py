"""Configuration for registries and per-call options."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Any, Mapping

from .connectors.base import StreamOptions

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"", "0", "false", "no", "off"})


def _parse_flag(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


@dataclass(slots=True)
class PatchbayConfig:
    """Settings shared by registry construction and credential lookup.

    Attributes
    ----------
    api_keys:
        Explicit API keys by provider name. A key here takes priority over
        every environment variable during auth resolution.
    include_debug_connector:
        Whether :func:`patchbay.connectors.create_registry` registers the
        deterministic debug connector.
    disabled_connectors:
        Connector ids that are never registered by ``create_registry``.
    """

    api_keys: dict[str, str] = field(default_factory=dict)
    include_debug_connector: bool = True
    disabled_connectors: frozenset[str] = frozenset()

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "PatchbayConfig":
        """Build a config from plain data, validating every field."""

        if not isinstance(payload, Mapping):
            raise ValueError("configuration must be a mapping")

        unknown = set(payload) - {"api_keys", "include_debug_connector", "disabled_connectors"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ValueError(f"unknown configuration keys: {joined}")

        api_keys = payload.get("api_keys") or {}
        if not isinstance(api_keys, Mapping):
            raise ValueError("api_keys must map provider names to keys")
        for provider, key in api_keys.items():
            if not isinstance(provider, str) or not provider:
                raise ValueError("api_keys provider names must be non-empty strings")
            if not isinstance(key, str) or not key:
                raise ValueError(f"api_keys[{provider!r}] must be a non-empty string")

        include_debug = payload.get("include_debug_connector", True)
        if not isinstance(include_debug, bool):
            raise ValueError("include_debug_connector must be a boolean")

        disabled = payload.get("disabled_connectors") or ()
        if isinstance(disabled, str) or not all(isinstance(item, str) and item for item in disabled):
            raise ValueError("disabled_connectors must be a list of connector ids")

        return cls(
            api_keys=dict(api_keys),
            include_debug_connector=include_debug,
            disabled_connectors=frozenset(disabled),
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PatchbayConfig":
        """Read ``PATCHBAY_DISABLE_DEBUG`` and ``PATCHBAY_DISABLED_CONNECTORS``."""

        env = os.environ if environ is None else environ
        disable_debug = _parse_flag("PATCHBAY_DISABLE_DEBUG", env.get("PATCHBAY_DISABLE_DEBUG", ""))
        raw_disabled = env.get("PATCHBAY_DISABLED_CONNECTORS", "")
        disabled = frozenset(item.strip() for item in raw_disabled.split(",") if item.strip())
        return cls(include_debug_connector=not disable_debug, disabled_connectors=disabled)

    def explicit_key(self, provider: str) -> str | None:
        return self.api_keys.get(provider)

    def is_enabled(self, connector_id: str) -> bool:
        return connector_id not in self.disabled_connectors

    def stream_options(self, provider: str, **overrides: Any) -> StreamOptions:
        """Return call options carrying the configured key for ``provider``."""

        overrides.setdefault("api_key", self.explicit_key(provider))
        return StreamOptions(**overrides)
