"""Naming conventions shared by connectors and the auth resolver."""

from __future__ import annotations

import re

__all__ = ["builtin_connector_id", "conventional_env_var", "provider_label"]


_SEGMENT_SEPARATOR = re.compile(r"-")


def conventional_env_var(provider: str) -> str:
    """Return the conventional API key variable for ``provider``.

    The provider name is upper-cased, hyphens become underscores and the
    ``_API_KEY`` suffix is appended, so ``"amazon-bedrock"`` maps to
    ``AMAZON_BEDROCK_API_KEY``.
    """

    return f"{_SEGMENT_SEPARATOR.sub('_', provider.upper())}_API_KEY"


def provider_label(provider: str) -> str:
    """Return a display label for ``provider`` (``"google-vertex"`` -> ``"Google Vertex"``)."""

    segments = _SEGMENT_SEPARATOR.split(provider)
    return " ".join(segment[:1].upper() + segment[1:] for segment in segments)


def builtin_connector_id(provider: str) -> str:
    """Return the registry id used for the built-in connector of ``provider``."""

    return f"builtin/{provider}"
