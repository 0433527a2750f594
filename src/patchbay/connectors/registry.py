"""In-memory connector registry indexed by id, provider and api."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
import logging

from .base import Connector

LOGGER = logging.getLogger(__name__)


class ConnectorRegistry:
    """Holds connectors and answers lookups by id, provider or api.

    Registering an id that is already present replaces the earlier connector
    and drops its provider and api index entries first. The provider index is
    last-write-wins; the api index keeps every connector on a transport in
    registration order. Lookups that find nothing return ``None``, an empty
    list or ``False``.
    """

    def __init__(self, connectors: Iterable[Connector] = ()) -> None:
        self._by_id: dict[str, Connector] = {}
        self._by_provider: dict[str, Connector] = {}
        self._by_api: dict[str, list[Connector]] = {}
        for connector in connectors:
            self.register(connector)

    def register(self, connector: Connector) -> None:
        if not isinstance(connector, Connector):
            msg = f"expected a Connector, got {type(connector).__name__}"
            raise TypeError(msg)

        previous = self._by_id.get(connector.id)
        if previous is not None:
            self._drop_indexes(previous)
            LOGGER.debug("replacing connector %s", connector.id)
        else:
            LOGGER.debug("registering connector %s (%s)", connector.id, connector.provider)

        self._by_id[connector.id] = connector
        self._by_provider[connector.provider] = connector
        self._by_api.setdefault(connector.api, []).append(connector)

    def unregister(self, connector_id: str) -> bool:
        connector = self._by_id.pop(connector_id, None)
        if connector is None:
            return False
        self._drop_indexes(connector)
        LOGGER.debug("unregistered connector %s", connector_id)
        return True

    def get(self, connector_id: str) -> Connector | None:
        return self._by_id.get(connector_id)

    def get_by_provider(self, provider: str) -> Connector | None:
        """Return the most recently registered connector for ``provider``."""

        return self._by_provider.get(provider)

    def get_by_api(self, api: str) -> list[Connector]:
        return list(self._by_api.get(api, ()))

    def list(self) -> list[Connector]:
        return list(self._by_id.values())

    def list_providers(self) -> list[str]:
        return list(self._by_provider)

    def has(self, connector_id: str) -> bool:
        return connector_id in self._by_id

    def clear(self) -> None:
        self._by_id.clear()
        self._by_provider.clear()
        self._by_api.clear()

    @property
    def size(self) -> int:
        return len(self._by_id)

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[Connector]:
        return iter(self.list())

    def __contains__(self, connector_id: object) -> bool:
        return connector_id in self._by_id

    def _drop_indexes(self, connector: Connector) -> None:
        if self._by_provider.get(connector.provider) is connector:
            # Earlier connectors for this provider stay reachable only by id.
            del self._by_provider[connector.provider]

        peers = self._by_api.get(connector.api)
        if peers is None:
            return
        remaining = [candidate for candidate in peers if candidate is not connector]
        if remaining:
            self._by_api[connector.api] = remaining
        else:
            del self._by_api[connector.api]
