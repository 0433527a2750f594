"""Connector records, the registry and built-in connectors."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base import Connector, StreamFunction, StreamOptions
from .bridge import (
    ProviderEventNormalizer,
    StreamingBackend,
    adapt_events,
    build_connector,
    explicit_event_id,
    map_stop_reason,
    partial_snapshot_id,
)
from .debug import DEBUG_MODELS, DEBUG_PROVIDER, debug_connector
from .openai import OpenAIChunkNormalizer, build_openai_connector
from .registry import ConnectorRegistry

if TYPE_CHECKING:
    from ..config import PatchbayConfig

LOGGER = logging.getLogger(__name__)


def builtin_connectors(config: PatchbayConfig | None = None) -> list[Connector]:
    """Return the built-in connectors enabled by ``config``.

    Only the debug connector ships without an injected backend; provider
    connectors are built with :func:`build_connector` or
    :func:`build_openai_connector` and registered by the caller.
    """

    connectors: list[Connector] = []
    if config is None or config.include_debug_connector:
        connectors.append(debug_connector())
    if config is not None:
        connectors = [connector for connector in connectors if config.is_enabled(connector.id)]
    return connectors


def create_registry(config: PatchbayConfig | None = None) -> ConnectorRegistry:
    """Return a new registry holding the built-in connectors ``config`` enables."""

    registry = ConnectorRegistry(builtin_connectors(config))
    LOGGER.debug("created registry with %d connector(s)", registry.size)
    return registry


__all__ = [
    "DEBUG_MODELS",
    "DEBUG_PROVIDER",
    "Connector",
    "ConnectorRegistry",
    "OpenAIChunkNormalizer",
    "ProviderEventNormalizer",
    "StreamFunction",
    "StreamOptions",
    "StreamingBackend",
    "adapt_events",
    "build_connector",
    "build_openai_connector",
    "builtin_connectors",
    "create_registry",
    "debug_connector",
    "explicit_event_id",
    "map_stop_reason",
    "partial_snapshot_id",
]
