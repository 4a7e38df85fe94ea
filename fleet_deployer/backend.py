"""Interface to the machinery that applies releases to a cluster.

A backend carries out the install, upgrade and uninstall actions decided on
by the deployer and records their outcome in its release storage. Each action
can be run as a dry run, which validates the action without changing the
cluster or the release history.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import datetime

from .manifest import Chart, Release
from .post_render import PostRender
from .storage import ReleaseReader
from .values import Values

__all__ = [
    "Backend",
    "InstallOptions",
    "UpgradeOptions",
    "UninstallOptions",
]


@dataclass
class InstallOptions:
    """Options for installing a new release."""

    release_name: str
    """Name of the release to create."""

    namespace: str
    """Namespace to install the release into."""

    timeout: datetime.timedelta
    """Time to wait for the release to become ready."""

    dry_run: bool = False
    """Validate the install without changing anything."""

    wait: bool = True
    """Wait for the release resources to become ready."""

    create_namespace: bool = False
    """Create the namespace when it does not exist."""

    replace: bool = False
    """Reuse the name of a release that was uninstalled or failed."""

    post_renderer: PostRender | None = None
    """Post renderer applied to the rendered manifests."""


@dataclass
class UpgradeOptions:
    """Options for upgrading an existing release."""

    namespace: str
    """Namespace of the release."""

    timeout: datetime.timedelta
    """Time to wait for the release to become ready."""

    dry_run: bool = False
    """Validate the upgrade without changing anything."""

    atomic: bool = False
    """Roll back to the prior version when the upgrade fails."""

    post_renderer: PostRender | None = None
    """Post renderer applied to the rendered manifests."""


@dataclass
class UninstallOptions:
    """Options for uninstalling a release."""

    timeout: datetime.timedelta | None = None
    """Time to wait for the release resources to be deleted."""

    dry_run: bool = False
    """Simulate the uninstall without changing anything."""


class Backend(ABC):
    """Applies release actions to a cluster."""

    @property
    @abstractmethod
    def releases(self) -> ReleaseReader:
        """Read access to the history of releases managed by this backend."""

    @abstractmethod
    async def install(
        self, chart: Chart, values: Values, options: InstallOptions
    ) -> Release:
        """Install the chart as a new release.

        Raises:
            ActionFailedError: If the install failed. No record is stored.
            TimeoutExceededError: If the release did not become ready in time.
        """

    @abstractmethod
    async def upgrade(
        self, name: str, chart: Chart, values: Values, options: UpgradeOptions
    ) -> Release:
        """Upgrade the deployed release to a new version of the chart.

        Raises:
            ActionFailedError: If the upgrade failed.
            TimeoutExceededError: If the release did not become ready in time.
        """

    @abstractmethod
    async def uninstall(self, name: str, options: UninstallOptions) -> None:
        """Remove the release and its history.

        Raises:
            ActionFailedError: If the release can't be removed.
        """
