"""Plugin registration: resolve a plugin's entry point and collect what it registers.

Discovering plugins on disk and importing their modules is left to the
caller; this module starts from the already-imported entry object.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import inspect
import logging
from typing import Any, Union

from .connectors.base import Connector
from .connectors.registry import ConnectorRegistry
from .core.errors import PluginError
from .tools import ToolMeta, ToolRegistry

LOGGER = logging.getLogger(__name__)

RegisterFunction = Callable[["PluginApi"], Union[None, Awaitable[None]]]


@dataclass(frozen=True, slots=True)
class FunctionRegistration:
    """The entry object is itself the register function."""

    function: RegisterFunction


@dataclass(frozen=True, slots=True)
class RegisterRegistration:
    """The entry object exposes a ``register`` method."""

    target: Any

    @property
    def function(self) -> RegisterFunction:
        return self.target.register


@dataclass(frozen=True, slots=True)
class ActivateRegistration:
    """The entry object exposes an ``activate`` method."""

    target: Any

    @property
    def function(self) -> RegisterFunction:
        return self.target.activate


Registration = Union[FunctionRegistration, RegisterRegistration, ActivateRegistration]


def resolve_registration(entry: Any) -> Registration:
    """Classify ``entry``: a callable, else ``.register``, else ``.activate``."""

    if callable(entry) and not inspect.isclass(entry):
        return FunctionRegistration(entry)
    if callable(getattr(entry, "register", None)):
        return RegisterRegistration(entry)
    if callable(getattr(entry, "activate", None)):
        return ActivateRegistration(entry)
    msg = f"plugin entry of type {type(entry).__name__} has no register function"
    raise PluginError(msg)


@dataclass(frozen=True, slots=True)
class ToolRegistration:
    """A tool (or tool factory) a plugin registered."""

    tool: Any
    names: tuple[str, ...] = ()
    optional: bool = False

    @property
    def is_factory(self) -> bool:
        return callable(self.tool) and not hasattr(self.tool, "name")


class PluginApi:
    """Registration surface handed to a plugin's register function."""

    def __init__(self, plugin_id: str, name: str) -> None:
        self.id = plugin_id
        self.name = name
        self.connectors: list[Connector] = []
        self.tools: list[ToolRegistration] = []

    def register_connector(self, connector: Connector) -> None:
        if not isinstance(connector, Connector):
            msg = f"plugin '{self.id}' registered a non-connector value"
            raise PluginError(msg)
        self.connectors.append(connector)

    def register_tool(
        self,
        tool: Any,
        *,
        name: str | None = None,
        names: tuple[str, ...] | list[str] | None = None,
        optional: bool = False,
    ) -> None:
        resolved_names = tuple(names) if names else ((name,) if name else ())
        self.tools.append(ToolRegistration(tool=tool, names=resolved_names, optional=optional))


@dataclass(frozen=True, slots=True)
class LoadedPlugin:
    id: str
    name: str
    registration: Registration
    connectors: tuple[Connector, ...] = ()
    tools: tuple[ToolRegistration, ...] = ()


async def load_plugin(entry: Any, *, plugin_id: str, name: str | None = None) -> LoadedPlugin:
    """Run ``entry``'s register function and collect its registrations."""

    registration = resolve_registration(entry)
    api = PluginApi(plugin_id, name or plugin_id)

    result = registration.function(api)
    if inspect.isawaitable(result):
        await result

    LOGGER.info(
        "loaded plugin %s (%d tools, %d connectors)",
        plugin_id,
        len(api.tools),
        len(api.connectors),
    )
    return LoadedPlugin(
        id=plugin_id,
        name=api.name,
        registration=registration,
        connectors=tuple(api.connectors),
        tools=tuple(api.tools),
    )


def install_plugin(
    plugin: LoadedPlugin,
    registry: ConnectorRegistry,
    tools: ToolRegistry | None = None,
) -> int:
    """Register the plugin's connectors into ``registry``; returns how many.

    When ``tools`` is given, the plugin's tools and tool factories are added
    to it as well, tagged with the plugin id.
    """

    for connector in plugin.connectors:
        registry.register(connector)
    if tools is not None:
        for index, registration in enumerate(plugin.tools):
            _install_tool(plugin, index, registration, tools)
    return len(plugin.connectors)


def _install_tool(plugin: LoadedPlugin, index: int, registration: ToolRegistration, tools: ToolRegistry) -> None:
    tool_id = registration.names[0] if registration.names else None
    if not registration.is_factory:
        tools.register(
            registration.tool,
            tool_id=tool_id,
            source="plugin",
            plugin_id=plugin.id,
            optional=registration.optional,
        )
        return

    tool_id = tool_id or f"{plugin.id}/factory-{index}"
    tools.register_factory(
        registration.tool,
        ToolMeta(
            id=tool_id,
            label=tool_id,
            source="plugin",
            plugin_id=plugin.id,
            optional=registration.optional,
        ),
    )
