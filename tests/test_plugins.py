from __future__ import annotations

import asyncio
import logging
from types import SimpleNamespace
from typing import Any

import pytest

from patchbay.connectors import ConnectorRegistry
from patchbay.connectors.base import Connector
from patchbay.core.errors import PluginError
from patchbay.plugins import (
    ActivateRegistration,
    FunctionRegistration,
    PluginApi,
    RegisterRegistration,
    install_plugin,
    load_plugin,
    resolve_registration,
)
from patchbay.tools import ToolMeta, ToolRegistry


def _connector(connector_id: str, provider: str) -> Connector:
    def stream_fn(*args: Any) -> Any:
        raise AssertionError("plugin tests never stream")

    return Connector(id=connector_id, label=provider, provider=provider, api="plugin-api", stream_fn=stream_fn)


def test_resolve_registration_prefers_callables():
    def register(api: PluginApi) -> None:
        return None

    both = SimpleNamespace(register=register, activate=register)

    assert resolve_registration(register) == FunctionRegistration(register)
    assert isinstance(resolve_registration(both), RegisterRegistration)
    assert isinstance(resolve_registration(SimpleNamespace(activate=register)), ActivateRegistration)
    assert resolve_registration(both).function is register


def test_resolve_registration_rejects_entries_without_register_function():
    class NotAPlugin:
        pass

    with pytest.raises(PluginError, match="no register function"):
        resolve_registration(SimpleNamespace(name="x"))
    with pytest.raises(PluginError):
        resolve_registration(NotAPlugin)


def test_load_plugin_collects_connectors_and_tools(caplog):
    tool = SimpleNamespace(name="search", description="Search", parameters={})

    def factory(context: Any) -> Any:
        return tool

    def register(api: PluginApi) -> None:
        api.register_connector(_connector("plugin/acme", "acme"))
        api.register_tool(tool)
        api.register_tool(factory, names=["search", "lookup"], optional=True)

    with caplog.at_level(logging.INFO, logger="patchbay.plugins"):
        plugin = asyncio.run(load_plugin(register, plugin_id="acme-plugin", name="Acme"))

    assert plugin.id == "acme-plugin"
    assert plugin.name == "Acme"
    assert [connector.id for connector in plugin.connectors] == ["plugin/acme"]
    assert plugin.tools[0].tool is tool
    assert not plugin.tools[0].is_factory
    assert plugin.tools[1].names == ("search", "lookup")
    assert plugin.tools[1].optional
    assert plugin.tools[1].is_factory
    assert "loaded plugin acme-plugin (2 tools, 1 connectors)" in caplog.text


def test_load_plugin_awaits_async_activate():
    class Entry:
        async def activate(self, api: PluginApi) -> None:
            await asyncio.sleep(0)
            api.register_tool(SimpleNamespace(name="t"), name="t")

    plugin = asyncio.run(load_plugin(Entry(), plugin_id="async-plugin"))

    assert plugin.name == "async-plugin"
    assert isinstance(plugin.registration, ActivateRegistration)
    assert plugin.tools[0].names == ("t",)


def test_register_connector_rejects_other_values():
    api = PluginApi("bad", "Bad")

    with pytest.raises(PluginError, match="non-connector"):
        api.register_connector({"id": "x"})  # type: ignore[arg-type]


def test_install_plugin_registers_connectors():
    def register(api: PluginApi) -> None:
        api.register_connector(_connector("plugin/one", "one"))
        api.register_connector(_connector("plugin/two", "two"))

    plugin = asyncio.run(load_plugin(register, plugin_id="pair"))
    registry = ConnectorRegistry()

    assert install_plugin(plugin, registry) == 2
    assert registry.get_by_provider("two").id == "plugin/two"
    assert [connector.id for connector in registry.get_by_api("plugin-api")] == ["plugin/one", "plugin/two"]


def test_plugin_errors_propagate():
    def register(api: PluginApi) -> None:
        raise RuntimeError("plugin exploded")

    with pytest.raises(RuntimeError, match="plugin exploded"):
        asyncio.run(load_plugin(register, plugin_id="broken"))


def test_install_plugin_registers_tools_and_factories() -> None:
    search = SimpleNamespace(name="search", description="Search", parameters={})
    lookup = SimpleNamespace(name="lookup", description="Lookup", parameters={})

    def factory(context: Any) -> Any:
        return [lookup] if context.get("enabled") else None

    def register(api: PluginApi) -> None:
        api.register_connector(_connector("plugin/acme", "acme"))
        api.register_tool(search)
        api.register_tool(factory, name="lookup", optional=True)
        api.register_tool(lambda context: search)

    plugin = asyncio.run(load_plugin(register, plugin_id="acme-plugin"))
    registry = ConnectorRegistry()
    tools = ToolRegistry()

    assert install_plugin(plugin, registry, tools) == 1

    assert [meta.id for meta in tools.list()] == ["search", "lookup", "acme-plugin/factory-2"]
    assert all(meta.source == "plugin" and meta.plugin_id == "acme-plugin" for meta in tools.list())
    assert tools.list()[1] == ToolMeta(
        id="lookup", label="lookup", source="plugin", plugin_id="acme-plugin", optional=True
    )
    assert tools.resolve_all({"enabled": True}) == [search, lookup, search]
    assert tools.resolve_all({"enabled": False}) == [search, search]


def test_install_plugin_without_tool_registry_only_adds_connectors() -> None:
    def register(api: PluginApi) -> None:
        api.register_connector(_connector("plugin/acme", "acme"))
        api.register_tool(SimpleNamespace(name="search"))

    plugin = asyncio.run(load_plugin(register, plugin_id="acme-plugin"))
    registry = ConnectorRegistry()

    assert install_plugin(plugin, registry) == 1
    assert registry.has("plugin/acme")
