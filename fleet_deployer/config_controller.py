"""Controller that reloads the manager configuration when its ConfigMap changes.

Change events for every ConfigMap are passed through `on_change`, which only
acts on the `fleet-controller` ConfigMap in the namespace of the manager and
returns all objects unchanged.
"""

from collections.abc import AsyncIterable
import logging

from .config import MANAGER_CONFIG_NAME, read_config, set_config
from .exceptions import InputException
from .manifest import ConfigMap

__all__ = [
    "ConfigController",
]

_LOGGER = logging.getLogger(__name__)


class ConfigController:
    """Reloads the manager configuration from ConfigMap change events."""

    def __init__(self, namespace: str, name: str = MANAGER_CONFIG_NAME) -> None:
        """Initialize ConfigController."""
        self._namespace = namespace
        self._name = name

    def on_change(self, config_map: ConfigMap | None) -> ConfigMap | None:
        """Handle a change to a ConfigMap.

        Raises InputException if the manager ConfigMap holds an invalid
        configuration, in which case the current configuration is kept.
        """
        if config_map is None:
            return None
        if config_map.name != self._name or config_map.namespace != self._namespace:
            return config_map
        set_config(read_config(config_map))
        return config_map

    async def watch(self, events: AsyncIterable[ConfigMap | None]) -> int:
        """Process a stream of ConfigMap change events until it is exhausted.

        An event that fails to parse is logged and later events are still
        processed. Returns the number of events that failed.
        """
        failures = 0
        async for config_map in events:
            try:
                self.on_change(config_map)
            except InputException as err:
                failures += 1
                _LOGGER.error("Failed to reload configuration: %s", err)
        return failures
