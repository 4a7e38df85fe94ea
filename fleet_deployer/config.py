"""Configuration objects for fleet-deployer.

`DeployerConfig` holds the defaults used when reconciling bundles.

`ManagerConfig` is the process wide configuration of the fleet manager,
stored as json in the `fleet-controller` ConfigMap. The current snapshot is
replaced as a whole when the ConfigMap changes, so readers always see a
consistent configuration.
"""

from dataclasses import dataclass, field
import json
import logging
import threading

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField

from .exceptions import InputException
from .manifest import ConfigMap, DEFAULT_NAMESPACE
from .ownership import DEFAULT_PREFIX
from .storage import MAX_HISTORY

__all__ = [
    "DeployerConfig",
    "ManagerConfig",
    "read_config",
    "get_config",
    "set_config",
]

_LOGGER = logging.getLogger(__name__)

MANAGER_CONFIG_NAME = "fleet-controller"
CONFIG_KEY = "config"
DEFAULT_TIMEOUT_SECONDS = 600


@dataclass
class DeployerConfig:
    """Configuration for the HelmDeployer."""

    max_history: int = MAX_HISTORY
    """Number of versions kept for each release."""

    default_namespace: str = DEFAULT_NAMESPACE
    """Namespace used when the deployment options do not set one."""

    default_timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    """Timeout used when the deployment options do not set one."""

    ownership_prefix: str = DEFAULT_PREFIX
    """Prefix of the object set id stamped on deployed objects."""


@dataclass(frozen=True)
class ManagerConfig(DataClassDictMixin):
    """Process wide configuration of the fleet manager."""

    agent_image: str = field(default="", metadata=field_options(alias="agentImage"))
    agent_image_pull_policy: str = field(
        default="", metadata=field_options(alias="agentImagePullPolicy")
    )
    system_default_registry: str = field(
        default="", metadata=field_options(alias="systemDefaultRegistry")
    )
    api_server_url: str = field(
        default="", metadata=field_options(alias="apiServerURL")
    )
    api_server_ca: str = field(default="", metadata=field_options(alias="apiServerCA"))
    agent_checkin_interval: str = field(
        default="", metadata=field_options(alias="agentCheckinInterval")
    )

    class Config(BaseConfig):
        omit_default = True
        serialize_by_alias = True


def read_config(config_map: ConfigMap) -> ManagerConfig:
    """Parse the manager configuration stored in a ConfigMap.

    A ConfigMap without configuration data yields the default configuration.
    """
    if not (content := (config_map.data or {}).get(CONFIG_KEY)):
        return ManagerConfig()
    try:
        doc = json.loads(content)
    except (TypeError, ValueError) as err:
        raise InputException(
            f"Unable to parse config in ConfigMap {config_map.name}: {err}"
        ) from err
    if not isinstance(doc, dict):
        raise InputException(
            f"Invalid config in ConfigMap {config_map.name}, expected an object"
        )
    try:
        return ManagerConfig.from_dict(doc)
    except (MissingField, InvalidFieldValue) as err:
        raise InputException(
            f"Invalid config in ConfigMap {config_map.name}: {err}"
        ) from err


_lock = threading.Lock()
_config = ManagerConfig()


def get_config() -> ManagerConfig:
    """Return the current manager configuration."""
    with _lock:
        return _config


def set_config(config: ManagerConfig) -> None:
    """Replace the current manager configuration."""
    global _config
    with _lock:
        _config = config
    _LOGGER.info("Manager configuration updated")
