"""An in-process cluster that applies releases without a kubernetes API.

The `InMemoryCluster` keeps the release history and the objects of every
release in memory. It does not evaluate chart templates: templates are used
as literal manifests once escaped template delimiters are restored, which is
the form produced for bundles of plain manifests. A readiness check may be
supplied to simulate resources that take time to become ready.

Dry runs are pure simulations and never modify the namespaces, objects or
release history.
"""

import asyncio
from collections.abc import Awaitable, Callable
import dataclasses
import datetime
import logging
from typing import Any

from .backend import Backend, InstallOptions, UninstallOptions, UpgradeOptions
from .exceptions import (
    ActionFailedError,
    FleetException,
    InputException,
    NoDeployedReleasesError,
    ReleaseNotFoundError,
    TimeoutExceededError,
)
from .manifest import Chart, Release, ReleaseStatus, parse_objects
from .post_render import PostRender
from .render import unescape_template
from .storage import InMemoryReleaseStorage, MAX_HISTORY
from .values import Values, check_values, merge_values

__all__ = [
    "InMemoryCluster",
    "ReadinessCheck",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_NAMESPACES = frozenset({"default", "kube-system"})
REPLACEABLE_STATUSES = frozenset({ReleaseStatus.UNINSTALLED, ReleaseStatus.FAILED})

ReadinessCheck = Callable[[Release, list[dict[str, Any]]], Awaitable[None]]


class InMemoryCluster(Backend):
    """A backend that applies releases to an in-memory cluster."""

    def __init__(
        self,
        max_history: int = MAX_HISTORY,
        namespaces: set[str] | None = None,
        readiness: ReadinessCheck | None = None,
    ) -> None:
        """Initialize InMemoryCluster.

        Args:
            max_history: Number of versions kept for each release.
            namespaces: Namespaces that exist in the cluster.
            readiness: Waited on after applying a release, when waiting is
                requested, until the release objects are ready.
        """
        self._storage = InMemoryReleaseStorage(max_history)
        self.namespaces: set[str] = set(
            DEFAULT_NAMESPACES if namespaces is None else namespaces
        )
        self.objects: dict[str, list[dict[str, Any]]] = {}
        self._readiness = readiness

    @property
    def releases(self) -> InMemoryReleaseStorage:
        """Release history of the cluster."""
        return self._storage

    async def _render(
        self, chart: Chart, values: Values, post_renderer: PostRender | None
    ) -> tuple[str, list[dict[str, Any]], Values]:
        """Return the manifest, objects and effective values for a release."""
        try:
            merged = merge_values(check_values(chart.values), values)
            rendered = "\n---\n".join(
                unescape_template(content.decode("utf-8"))
                for _, content in chart.templates()
            )
        except (InputException, UnicodeDecodeError) as err:
            raise ActionFailedError(
                f"Unable to render chart {chart.metadata.name}: {err}"
            ) from err
        manifest = rendered
        if post_renderer is not None:
            manifest = (await post_renderer.run(rendered.encode("utf-8"))).decode(
                "utf-8"
            )
        try:
            objects = parse_objects(manifest)
        except InputException as err:
            raise ActionFailedError(
                f"Unable to build kubernetes objects from release manifest: {err}"
            ) from err
        return manifest, objects, merged

    async def _wait(
        self,
        release: Release,
        objects: list[dict[str, Any]],
        timeout: datetime.timedelta,
    ) -> None:
        if self._readiness is None:
            return
        try:
            async with asyncio.timeout(timeout.total_seconds()):
                await self._readiness(release, objects)
        except TimeoutError as err:
            raise TimeoutExceededError(
                f"Release {release.resource_id} was not ready after {timeout}"
            ) from err

    async def _last(self, name: str) -> Release | None:
        try:
            return await self._storage.last(name)
        except ReleaseNotFoundError:
            return None

    async def install(
        self, chart: Chart, values: Values, options: InstallOptions
    ) -> Release:
        """Install the chart as a new release."""
        name = options.release_name
        if options.namespace not in self.namespaces and not options.create_namespace:
            raise ActionFailedError(
                "create: failed to create: "
                f'namespaces "{options.namespace}" not found'
            )
        last = await self._last(name)
        if last is not None and not (
            options.replace and last.status in REPLACEABLE_STATUSES
        ):
            raise ActionFailedError(
                f"cannot re-use a name that is still in use: {name}"
            )
        manifest, objects, merged = await self._render(
            chart, values, options.post_renderer
        )
        release = Release(
            name=name,
            namespace=options.namespace,
            version=last.version + 1 if last is not None else 1,
            status=ReleaseStatus.PENDING_INSTALL,
            manifest=manifest,
            chart=chart.metadata,
            values=merged,
            description="Dry run complete",
        )
        if options.dry_run:
            _LOGGER.debug("Dry run install of %s", release.resource_id)
            return release

        if options.namespace not in self.namespaces:
            _LOGGER.info("Creating namespace %s", options.namespace)
            self.namespaces.add(options.namespace)
        previous = self.objects.get(name)
        self.objects[name] = objects
        if options.wait:
            try:
                await self._wait(release, objects, options.timeout)
            except FleetException:
                if previous is None:
                    del self.objects[name]
                else:
                    self.objects[name] = previous
                raise
        release = dataclasses.replace(
            release, status=ReleaseStatus.DEPLOYED, description="Install complete"
        )
        await self._storage.append(release)
        _LOGGER.info("Installed %s", release.resource_id)
        return release

    async def upgrade(
        self, name: str, chart: Chart, values: Values, options: UpgradeOptions
    ) -> Release:
        """Upgrade the deployed release to a new version of the chart."""
        if options.namespace not in self.namespaces:
            raise ActionFailedError(
                f"upgrade: namespaces \"{options.namespace}\" not found"
            )
        try:
            await self._storage.deployed(name)
        except NoDeployedReleasesError as err:
            raise ActionFailedError(f"upgrade: {err}") from err
        last = await self._storage.last(name)
        manifest, objects, merged = await self._render(
            chart, values, options.post_renderer
        )
        release = Release(
            name=name,
            namespace=options.namespace,
            version=last.version + 1,
            status=ReleaseStatus.PENDING_UPGRADE,
            manifest=manifest,
            chart=chart.metadata,
            values=merged,
            description="Dry run complete",
        )
        if options.dry_run:
            _LOGGER.debug("Dry run upgrade of %s", release.resource_id)
            return release

        previous = self.objects.get(name, [])
        self.objects[name] = objects
        try:
            await self._wait(release, objects, options.timeout)
        except FleetException:
            if options.atomic:
                _LOGGER.info(
                    "Upgrade of %s failed, rolling back to version %s",
                    name,
                    last.version,
                )
                self.objects[name] = previous
            raise
        release = dataclasses.replace(
            release, status=ReleaseStatus.DEPLOYED, description="Upgrade complete"
        )
        await self._storage.append(release)
        _LOGGER.info("Upgraded %s", release.resource_id)
        return release

    async def uninstall(self, name: str, options: UninstallOptions) -> None:
        """Remove the release objects and its history."""
        if await self._last(name) is None:
            raise ActionFailedError(f"uninstall: Release not loaded: {name}")
        if options.dry_run:
            _LOGGER.debug("Dry run uninstall of %s", name)
            return
        self.objects.pop(name, None)
        await self._storage.purge(name)
        _LOGGER.info("Uninstalled %s", name)
