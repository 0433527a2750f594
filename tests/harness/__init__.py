"""Test harness utilities for connector validation."""

from .connector_harness import collect, collect_async, event_types

__all__ = [
    "collect",
    "collect_async",
    "event_types",
]
