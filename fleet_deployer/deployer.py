"""Interface for deploying bundles to a cluster."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from .manifest import BaseManifest, BundleManifest, DeploymentOptions

__all__ = [
    "Deployer",
    "Resources",
]


@dataclass
class Resources(BaseManifest):
    """The objects deployed for one version of a release."""

    id: str = ""
    """Handle of the release version in the form `name:version`."""

    default_namespace: str = ""
    """Namespace for objects that do not set one."""

    objects: list[dict[str, Any]] = field(default_factory=list)
    """The deployed objects."""


class Deployer(ABC):
    """Reconciles bundles against the releases in a cluster."""

    @abstractmethod
    async def deploy(
        self, bundle_id: str, bundle: BundleManifest, options: DeploymentOptions
    ) -> Resources:
        """Install, upgrade or reinstall the release for the bundle."""

    @abstractmethod
    async def delete(self, bundle_id: str) -> None:
        """Uninstall the release for the bundle."""

    @abstractmethod
    async def resources(self, bundle_id: str, resources_id: str) -> Resources:
        """Return the objects of a version of the release for the bundle."""

    @abstractmethod
    async def list_deployments(self) -> list[str]:
        """Return the ids of all bundles with a release in the cluster."""
