"""Library for applying releases to a cluster with the `helm` command.

The chart and values are written to a scratch directory and passed to
`helm install`, `helm upgrade` or `helm uninstall`. Post-rendering is done by
helm invoking the `fleet-deployer post-render` command with the bundle written
beside the chart:
```python
from fleet_deployer.helm import Helm
from fleet_deployer.helm_deployer import HelmDeployer

deployer = HelmDeployer(Helm(Path("/tmp/path/helm")))
resources = await deployer.deploy("app-1", bundle, DeploymentOptions())
```

The history of releases is read from the secrets that helm writes to the
cluster.
"""

import datetime
import json
import logging
from pathlib import Path
import tempfile

import aiofiles
import yaml

from . import command
from .backend import Backend, InstallOptions, UninstallOptions, UpgradeOptions
from .exceptions import (
    ActionFailedError,
    HelmException,
    InputException,
    ReleaseNotFoundError,
    TimeoutExceededError,
)
from .kustomize import write_bundle
from .manifest import Chart, Release
from .post_render import PostRender
from .storage import HelmSecretsReader, MAX_HISTORY
from .values import Values

__all__ = [
    "Helm",
]

_LOGGER = logging.getLogger(__name__)


HELM_BIN = "helm"
POST_RENDER_BIN = "fleet-deployer"
POST_RENDER_COMMAND = "post-render"
VALUES_FILE = "values.yaml"
CHART_DIR = "chart"
BUNDLE_DIR = "bundle"

# Seconds added to the action timeout before the helm process is considered hung
GRACE_SECONDS = 30.0
DEFAULT_UNINSTALL_TIMEOUT = datetime.timedelta(minutes=5)

TIMEOUT_MESSAGES = (
    "timed out waiting for the condition",
    "context deadline exceeded",
)


def _timeout_flag(timeout: datetime.timedelta) -> list[str]:
    return ["--timeout", f"{int(timeout.total_seconds())}s"]


class Helm(Backend):
    """Applies releases to a cluster using the helm command."""

    def __init__(
        self,
        tmp_dir: Path,
        kube_context: str | None = None,
        max_history: int = MAX_HISTORY,
    ) -> None:
        """Initialize Helm.

        Args:
            tmp_dir: Directory for the chart, values and bundle of each action.
            kube_context: Name of the kubeconfig context to use.
            max_history: Number of versions of a release kept by helm.
        """
        self._tmp_dir = tmp_dir
        self._max_history = max_history
        self._flags: list[str] = []
        kubectl_args: list[str] = []
        if kube_context:
            self._flags.extend(["--kube-context", kube_context])
            kubectl_args.extend(["--context", kube_context])
        self._releases = HelmSecretsReader(kubectl_args=kubectl_args)

    @property
    def releases(self) -> HelmSecretsReader:
        """Release history read from the helm secrets."""
        return self._releases

    async def _run(self, args: list[str], timeout: datetime.timedelta) -> str:
        cmd = command.Command(
            args + self._flags,
            exc=HelmException,
            timeout=timeout.total_seconds() + GRACE_SECONDS,
        )
        try:
            return await command.run(cmd)
        except HelmException as err:
            if any(message in str(err) for message in TIMEOUT_MESSAGES):
                raise TimeoutExceededError(str(err)) from err
            raise ActionFailedError(str(err)) from err

    async def _prepare(
        self,
        work_dir: Path,
        chart: Chart,
        values: Values,
        post_renderer: PostRender | None,
    ) -> list[str]:
        """Write the inputs of an action and return the helm arguments for them."""
        chart_dir = await chart.write(work_dir / CHART_DIR)
        values_path = work_dir / VALUES_FILE
        async with aiofiles.open(values_path, mode="w") as values_file:
            await values_file.write(yaml.dump(values, sort_keys=False))
        args = [str(chart_dir), "--values", str(values_path)]
        if post_renderer is not None:
            args.extend(["--post-renderer", POST_RENDER_BIN])
            renderer_args = [
                POST_RENDER_COMMAND,
                f"--bundle-id={post_renderer.bundle_id}",
                f"--prefix={post_renderer.prefix}",
            ]
            if post_renderer.bundle is not None:
                bundle_dir = work_dir / BUNDLE_DIR
                await write_bundle(bundle_dir, post_renderer.bundle)
                renderer_args.append(f"--bundle-dir={bundle_dir}")
            if post_renderer.kustomize_dir:
                renderer_args.append(f"--kustomize-dir={post_renderer.kustomize_dir}")
            for arg in renderer_args:
                args.extend(["--post-renderer-args", arg])
        return args

    def _release(self, out: str) -> Release:
        try:
            return Release.from_helm(json.loads(out))
        except (ValueError, AttributeError, InputException) as err:
            raise ActionFailedError(f"Unable to parse helm output: {err}") from err

    async def install(
        self, chart: Chart, values: Values, options: InstallOptions
    ) -> Release:
        """Install the chart with `helm install`."""
        with tempfile.TemporaryDirectory(dir=self._tmp_dir) as tmp_dir:
            args = [
                HELM_BIN,
                "install",
                options.release_name,
                *await self._prepare(
                    Path(tmp_dir), chart, values, options.post_renderer
                ),
                "--namespace",
                options.namespace,
                *_timeout_flag(options.timeout),
                "--output",
                "json",
            ]
            if options.wait:
                args.append("--wait")
            if options.create_namespace:
                args.append("--create-namespace")
            if options.replace:
                args.append("--replace")
            if options.dry_run:
                args.append("--dry-run")
            release = self._release(await self._run(args, options.timeout))
        _LOGGER.info(
            "helm install %s (dry run: %s)", release.resource_id, options.dry_run
        )
        return release

    async def upgrade(
        self, name: str, chart: Chart, values: Values, options: UpgradeOptions
    ) -> Release:
        """Upgrade the release with `helm upgrade`."""
        with tempfile.TemporaryDirectory(dir=self._tmp_dir) as tmp_dir:
            args = [
                HELM_BIN,
                "upgrade",
                name,
                *await self._prepare(
                    Path(tmp_dir), chart, values, options.post_renderer
                ),
                "--namespace",
                options.namespace,
                *_timeout_flag(options.timeout),
                "--history-max",
                str(self._max_history),
                "--output",
                "json",
            ]
            if options.atomic:
                args.append("--atomic")
            if options.dry_run:
                args.append("--dry-run")
            release = self._release(await self._run(args, options.timeout))
        _LOGGER.info(
            "helm upgrade %s (dry run: %s)", release.resource_id, options.dry_run
        )
        return release

    async def uninstall(self, name: str, options: UninstallOptions) -> None:
        """Uninstall the release with `helm uninstall`.

        A dry run still contacts the cluster to look up the release but
        does not delete anything.
        """
        try:
            last = await self._releases.last(name)
        except ReleaseNotFoundError as err:
            raise ActionFailedError(f"uninstall: Release not loaded: {name}") from err
        timeout = options.timeout or DEFAULT_UNINSTALL_TIMEOUT
        args = [
            HELM_BIN,
            "uninstall",
            name,
            "--namespace",
            last.namespace,
            *_timeout_flag(timeout),
        ]
        if options.dry_run:
            args.append("--dry-run")
        await self._run(args, timeout)
        _LOGGER.info("helm uninstall %s (dry run: %s)", name, options.dry_run)
