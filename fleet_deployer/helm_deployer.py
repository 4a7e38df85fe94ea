"""Deployer that reconciles a bundle against its release in a cluster.

A deploy renders the bundle into a chart and then decides, from the stored
history of the release, which action brings the cluster up to date:

- A release that is being uninstalled is uninstalled first, then installed.
- A release with no deployed version is installed.
- A deployed release is upgraded, rolling back if the upgrade fails.

Every deploy first runs that decision as a dry run. Only when the dry run
succeeds is it run again for real, so an invalid bundle never changes the
cluster.
"""

import datetime
import logging

from . import render
from .backend import Backend, InstallOptions, UninstallOptions, UpgradeOptions
from .config import DeployerConfig
from .deployer import Deployer, Resources
from .exceptions import FleetException, HistoryUnavailableError, ValidationError
from .history import ReleaseHistory, ReleaseState
from .manifest import (
    BUNDLE_ID_ANNOTATION,
    BundleManifest,
    Chart,
    DeploymentOptions,
    Release,
    parse_objects,
)
from .post_render import PostRender
from .values import check_values

__all__ = [
    "HelmDeployer",
    "release_to_resources",
]

_LOGGER = logging.getLogger(__name__)


def release_to_resources(release: Release | None) -> Resources:
    """Return the objects recorded for a release version."""
    if release is None:
        return Resources()
    return Resources(
        id=release.resource_id,
        default_namespace=release.namespace,
        objects=parse_objects(release.manifest),
    )


class HelmDeployer(Deployer):
    """Deploys bundles as releases using a backend."""

    def __init__(self, backend: Backend, config: DeployerConfig | None = None) -> None:
        """Initialize HelmDeployer."""
        self._backend = backend
        self._config = config or DeployerConfig()
        self._history = ReleaseHistory(backend.releases)

    def _chart(self, bundle_id: str, bundle: BundleManifest) -> Chart:
        chart = render.load_archive(render.to_chart(bundle_id, bundle))
        chart.metadata.annotations = {
            **(chart.metadata.annotations or {}),
            BUNDLE_ID_ANNOTATION: bundle_id,
        }
        return chart

    def _timeout(self, options: DeploymentOptions) -> datetime.timedelta:
        seconds = options.timeout_seconds
        if seconds <= 0:
            seconds = self._config.default_timeout_seconds
        return datetime.timedelta(seconds=seconds)

    def _namespace(self, options: DeploymentOptions) -> str:
        return options.default_namespace or self._config.default_namespace

    async def _install(
        self,
        bundle_id: str,
        chart: Chart,
        bundle: BundleManifest,
        options: DeploymentOptions,
        dry_run: bool,
    ) -> Release | None:
        """Run the install, upgrade or reinstall decided on from the history."""
        values = check_values(options.values)
        timeout = self._timeout(options)
        namespace = self._namespace(options)
        post_renderer = PostRender(
            bundle_id,
            bundle,
            kustomize_dir=options.kustomize_dir,
            prefix=self._config.ownership_prefix,
        )

        state = await self._history.state(bundle_id)
        if state == ReleaseState.UNINSTALLING:
            _LOGGER.info(
                "Release %s is uninstalling, removing it before install (dry run: %s)",
                bundle_id,
                dry_run,
            )
            await self._backend.uninstall(
                bundle_id, UninstallOptions(timeout=timeout, dry_run=dry_run)
            )
            if dry_run:
                return None
            state = await self._history.state(bundle_id)

        if state != ReleaseState.DEPLOYED:
            _LOGGER.info("Installing %s (dry run: %s)", bundle_id, dry_run)
            return await self._backend.install(
                chart,
                values,
                InstallOptions(
                    release_name=bundle_id,
                    namespace=namespace,
                    timeout=timeout,
                    dry_run=dry_run,
                    wait=True,
                    create_namespace=True,
                    replace=True,
                    post_renderer=post_renderer,
                ),
            )

        _LOGGER.info("Upgrading %s (dry run: %s)", bundle_id, dry_run)
        return await self._backend.upgrade(
            bundle_id,
            chart,
            values,
            UpgradeOptions(
                namespace=namespace,
                timeout=timeout,
                dry_run=dry_run,
                atomic=True,
                post_renderer=post_renderer,
            ),
        )

    async def deploy(
        self, bundle_id: str, bundle: BundleManifest, options: DeploymentOptions
    ) -> Resources:
        """Deploy the bundle, validating with a dry run before any change.

        Raises:
            RenderException: If the bundle can't be rendered into a chart.
            HistoryUnavailableError: If the release history can't be read.
            ValidationError: If the dry run failed; nothing was changed.
            ActionFailedError: If the install, upgrade or uninstall failed.
            TimeoutExceededError: If the release did not become ready in time.
        """
        chart = self._chart(bundle_id, bundle)
        _LOGGER.debug("Validating %s with a dry run", bundle_id)
        try:
            await self._install(bundle_id, chart, bundle, options, dry_run=True)
        except HistoryUnavailableError:
            raise
        except FleetException as err:
            raise ValidationError(bundle_id, str(err)) from err

        release = await self._install(bundle_id, chart, bundle, options, dry_run=False)
        return release_to_resources(release)

    async def delete(self, bundle_id: str) -> None:
        """Uninstall the release for the bundle."""
        _LOGGER.info("Deleting %s", bundle_id)
        await self._backend.uninstall(
            bundle_id, UninstallOptions(timeout=self._timeout(DeploymentOptions()))
        )

    async def resources(self, bundle_id: str, resources_id: str) -> Resources:
        """Return the objects of the release version with the handle.

        An unknown handle, including one with an invalid version, returns
        empty resources.
        """
        name, _, version = resources_id.partition(":")
        try:
            number = int(version)
        except ValueError:
            number = 0
        for release in await self._backend.releases.history(bundle_id):
            if release.name == name and release.version == number:
                return release_to_resources(release)
        return Resources()

    async def list_deployments(self) -> list[str]:
        """Return the ids of the bundles with a release, in first seen order."""
        bundle_ids: list[str] = []
        for release in await self._backend.releases.list_releases():
            if (bundle_id := release.bundle_id) and bundle_id not in bundle_ids:
                bundle_ids.append(bundle_id)
        return bundle_ids
