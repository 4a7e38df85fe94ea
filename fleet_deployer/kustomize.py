"""Library for applying a kustomize overlay to rendered manifests.

A bundle may contain a kustomization that should be applied to the output of
the chart. The bundle files are written to a scratch directory, the rendered
manifests are added beside the kustomization as `manifests.yaml` and then the
overlay is built with `kustomize build`:
```python
from fleet_deployer import kustomize

objects, applied = await kustomize.process(bundle, rendered, "overlays/prod")
if applied:
    for obj in objects:
        print(f"Found object {obj['apiVersion']} {obj['kind']}")
```
"""

import logging
from pathlib import Path, PurePosixPath
import tempfile
from typing import Any

import aiofiles
from aiofiles import os as aioos
from aiofiles.ospath import exists
import yaml

from .command import Command, Task, run
from .exceptions import InputException, KustomizeException
from .manifest import BundleManifest, parse_objects

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "build",
    "process",
    "write_bundle",
    "Kustomize",
]

KUSTOMIZE_BIN = "kustomize"
KUSTOMIZATION_FILE = "kustomization.yaml"
MANIFESTS_FILE = "manifests.yaml"


class Kustomize:
    """Library for issuing a kustomize command."""

    def __init__(self, cmd: Task) -> None:
        """Initialize Kustomize."""
        self._cmd = cmd

    async def run(self) -> str:
        """Run the kustomize command and return the output as a string."""
        return await run(self._cmd)

    async def objects(self) -> list[dict[str, Any]]:
        """Run the kustomize command and return the result cluster objects as a list."""
        out = await self.run()
        try:
            return parse_objects(out)
        except InputException as err:
            raise KustomizeException(
                f"Unable to parse command output: {self._cmd}: {err}"
            ) from err


def build(path: Path) -> Kustomize:
    """Build cluster objects from the kustomization in the specified path."""
    return Kustomize(
        Command([KUSTOMIZE_BIN, "build", "."], cwd=path, exc=KustomizeException)
    )


def _relative_path(name: str) -> PurePosixPath:
    """Return a bundle path that is guaranteed to stay within the bundle root."""
    path = PurePosixPath(name)
    if path.is_absolute() or ".." in path.parts:
        raise InputException(f"Invalid bundle path '{name}' escapes the bundle root")
    return path


async def write_bundle(root: Path, bundle: BundleManifest) -> None:
    """Write the bundle files into the root directory."""
    for resource in bundle.resources:
        target = root / _relative_path(resource.name)
        await aioos.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(target, mode="wb") as bundle_file:
            await bundle_file.write(resource.content_bytes())


def _with_manifests_resource(content: str) -> str:
    """Update a kustomization to include the rendered manifests as a resource."""
    try:
        doc = yaml.safe_load(content) or {}
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse {KUSTOMIZATION_FILE}: {err}") from err
    if not isinstance(doc, dict):
        raise InputException(f"Invalid {KUSTOMIZATION_FILE}, expected a map")
    resources = doc.get("resources") or []
    if not isinstance(resources, list):
        raise InputException(f"Invalid {KUSTOMIZATION_FILE} resources, expected a list")
    if MANIFESTS_FILE not in resources:
        doc["resources"] = [MANIFESTS_FILE, *resources]
    return yaml.dump(doc, sort_keys=False)


async def process(
    bundle: BundleManifest | None, rendered: bytes, kustomize_dir: str | None
) -> tuple[list[dict[str, Any]], bool]:
    """Apply the bundle's kustomize overlay to the rendered manifests.

    Returns the resulting objects and True when an overlay was applied. When
    no directory is configured, or the directory has no kustomization, the
    rendered manifests are left alone and an empty list is returned with False.
    """
    if not kustomize_dir or bundle is None:
        return [], False
    overlay_dir = _relative_path(kustomize_dir)
    with tempfile.TemporaryDirectory() as tmp_dir:
        root = Path(tmp_dir)
        await write_bundle(root, bundle)
        path = root / overlay_dir
        kustomization = path / KUSTOMIZATION_FILE
        if not await exists(kustomization):
            _LOGGER.debug(
                "No %s in '%s', skipping overlay", KUSTOMIZATION_FILE, kustomize_dir
            )
            return [], False
        async with aiofiles.open(kustomization) as ks_file:
            content = await ks_file.read()
        async with aiofiles.open(kustomization, mode="w") as ks_file:
            await ks_file.write(_with_manifests_resource(content))
        async with aiofiles.open(path / MANIFESTS_FILE, mode="wb") as manifests_file:
            await manifests_file.write(rendered)
        _LOGGER.debug("Applying kustomize overlay '%s'", kustomize_dir)
        objects = await build(path).objects()
    return objects, True
