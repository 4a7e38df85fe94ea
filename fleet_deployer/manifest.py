"""Representation of bundles, charts and release records.

A bundle is the set of source files for a deployment, rendered into a chart
that is installed as a release. Every install or upgrade of a release is
recorded as a new versioned `Release` by the storage backend.
"""

import base64
import binascii
from dataclasses import dataclass, field
from enum import StrEnum
import gzip
import logging
from pathlib import Path
from typing import Any, ClassVar

import aiofiles
from aiofiles import os as aioos
from aiofiles.ospath import isdir
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue
import yaml

from .exceptions import InputException

__all__ = [
    "read_bundle",
    "parse_objects",
    "dump_objects",
    "BundleManifest",
    "BundleResource",
    "Chart",
    "ChartMetadata",
    "ConfigMap",
    "DeploymentOptions",
    "Release",
    "ReleaseStatus",
]

_LOGGER = logging.getLogger(__name__)


DEFAULT_NAMESPACE = "default"
BUNDLE_ID_ANNOTATION = "bundleID"
CONFIG_MAP_KIND = "ConfigMap"
LIST_KIND_SUFFIX = "List"
CHART_FILE = "Chart.yaml"
VALUES_FILE = "values.yaml"
TEMPLATES_DIR = "templates"

ENCODING_BASE64 = "base64"
ENCODING_BASE64_GZ = "base64+gz"


def _check_version(doc: dict[str, Any], version: str) -> None:
    """Assert that the resource has the specified version."""
    if not (api_version := doc.get("apiVersion")):
        raise InputException(f"Invalid object missing apiVersion: {doc}")
    if not api_version.startswith(version):
        raise InputException(f"Invalid object expected '{version}': {doc}")


def parse_objects(content: str | bytes) -> list[dict[str, Any]]:
    """Parse a multi-document yaml stream into a list of objects.

    Objects of a list kind (e.g. `List`, `ConfigMapList`) are flattened
    into their items.
    """
    try:
        docs = list(yaml.safe_load_all(content))
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse manifests: {err}") from err
    objects: list[dict[str, Any]] = []
    for doc in docs:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise InputException(f"Invalid object, expected a map: {doc!r}")
        kind = doc.get("kind")
        if (
            isinstance(kind, str)
            and kind.endswith(LIST_KIND_SUFFIX)
            and isinstance(items := doc.get("items"), list)
        ):
            for item in items:
                if not isinstance(item, dict):
                    raise InputException(
                        f"Invalid {kind} item, expected a map: {item!r}"
                    )
                objects.append(item)
            continue
        objects.append(doc)
    return objects


def dump_objects(objects: list[dict[str, Any]]) -> str:
    """Serialize objects as a multi-document yaml stream."""
    if not objects:
        return ""
    return yaml.dump_all(objects, sort_keys=False, explicit_start=True)


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all serializable objects."""

    class Config(BaseConfig):
        omit_none = True


class ReleaseStatus(StrEnum):
    """Lifecycle status of a release record."""

    UNKNOWN = "unknown"
    DEPLOYED = "deployed"
    UNINSTALLED = "uninstalled"
    SUPERSEDED = "superseded"
    FAILED = "failed"
    UNINSTALLING = "uninstalling"
    PENDING_INSTALL = "pending-install"
    PENDING_UPGRADE = "pending-upgrade"
    PENDING_ROLLBACK = "pending-rollback"

    @classmethod
    def parse(cls, value: str | None) -> "ReleaseStatus":
        """Parse a status string, treating unrecognized values as unknown."""
        try:
            return cls(value or "")
        except ValueError:
            return cls.UNKNOWN


@dataclass
class ChartMetadata(BaseManifest):
    """The contents of a `Chart.yaml` file."""

    name: str
    """The name of the chart."""

    version: str
    """The SemVer version of the chart."""

    api_version: str = field(default="v2", metadata=field_options(alias="apiVersion"))
    """The chart API version."""

    app_version: str | None = field(
        default=None, metadata=field_options(alias="appVersion")
    )
    """The version of the app the chart contains."""

    description: str | None = None
    """A one sentence description of the chart."""

    annotations: dict[str, str] | None = None
    """Additional annotations on the chart, used to record the owning bundle."""

    class Config(BaseManifest.Config):
        serialize_by_alias = True

    @classmethod
    def parse_doc(cls, doc: Any) -> "ChartMetadata":
        """Parse chart metadata from a `Chart.yaml` document."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid chart metadata, expected a map: {doc!r}")
        if not doc.get("name"):
            raise InputException(f"Invalid chart metadata missing name: {doc}")
        if not doc.get("version"):
            raise InputException(f"Invalid chart metadata missing version: {doc}")
        try:
            return cls.from_dict(doc)
        except (MissingField, InvalidFieldValue) as err:
            raise InputException(f"Invalid chart metadata: {err}") from err


@dataclass
class Chart:
    """A chart loaded from an archive, ready to be installed."""

    metadata: ChartMetadata
    """Metadata from `Chart.yaml`."""

    values: dict[str, Any] = field(default_factory=dict)
    """Default values from `values.yaml`."""

    files: dict[str, bytes] = field(default_factory=dict)
    """All other chart files keyed by path relative to the chart root."""

    def templates(self) -> list[tuple[str, bytes]]:
        """Return the chart templates sorted by path."""
        prefix = f"{TEMPLATES_DIR}/"
        return sorted(
            (path, content)
            for path, content in self.files.items()
            if path.startswith(prefix)
        )

    async def write(self, path: Path) -> Path:
        """Write the chart as a directory that can be installed by helm."""
        await aioos.makedirs(path, exist_ok=True)
        contents: dict[str, bytes] = {
            CHART_FILE: yaml.dump(self.metadata.to_dict(), sort_keys=False).encode(),
            VALUES_FILE: yaml.dump(self.values, sort_keys=False).encode(),
        }
        contents.update(self.files)
        for rel_path, content in contents.items():
            target = path / rel_path
            await aioos.makedirs(target.parent, exist_ok=True)
            async with aiofiles.open(target, mode="wb") as chart_file:
                await chart_file.write(content)
        return path


@dataclass
class Release(BaseManifest):
    """A versioned record of an install or upgrade of a release."""

    name: str
    """The release name, which is the bundle id."""

    namespace: str
    """The namespace the release was installed into."""

    version: int
    """The release version, incremented for every new record."""

    status: ReleaseStatus
    """The lifecycle status of this version."""

    manifest: str = ""
    """The rendered and post-processed manifests of this version."""

    chart: ChartMetadata | None = None
    """Metadata of the chart used for this version."""

    values: dict[str, Any] = field(default_factory=dict)
    """The values used for this version."""

    description: str | None = None
    """Human readable description of the last action."""

    @property
    def resource_id(self) -> str:
        """Handle identifying this version's resources."""
        return f"{self.name}:{self.version}"

    @property
    def bundle_id(self) -> str | None:
        """The bundle that owns this release, recorded in the chart annotations."""
        if self.chart is None or not self.chart.annotations:
            return None
        return self.chart.annotations.get(BUNDLE_ID_ANNOTATION) or None

    @classmethod
    def from_helm(cls, doc: dict[str, Any]) -> "Release":
        """Parse a release from the json representation used by helm."""
        if not (name := doc.get("name")):
            raise InputException(f"Invalid release missing name: {doc}")
        info = doc.get("info") or {}
        chart_metadata = None
        if (chart := doc.get("chart")) and (metadata := chart.get("metadata")):
            chart_metadata = ChartMetadata.parse_doc(metadata)
        try:
            version = int(doc.get("version", 0))
        except (TypeError, ValueError) as err:
            raise InputException(f"Invalid release {name} version: {doc}") from err
        return cls(
            name=name,
            namespace=doc.get("namespace") or DEFAULT_NAMESPACE,
            version=version,
            status=ReleaseStatus.parse(info.get("status")),
            manifest=doc.get("manifest") or "",
            chart=chart_metadata,
            values=doc.get("config") or {},
            description=info.get("description"),
        )


@dataclass
class BundleResource(BaseManifest):
    """A single file in a bundle."""

    name: str
    """Path of the file relative to the bundle root."""

    content: str = ""
    """The file contents, encoded as described by `encoding`."""

    encoding: str | None = None
    """Empty for plain text, otherwise `base64` or `base64+gz`."""

    def content_bytes(self) -> bytes:
        """Return the decoded file contents."""
        if not self.encoding:
            return self.content.encode("utf-8")
        try:
            if self.encoding == ENCODING_BASE64:
                return base64.b64decode(self.content)
            if self.encoding == ENCODING_BASE64_GZ:
                return gzip.decompress(base64.b64decode(self.content))
        except (binascii.Error, OSError) as err:
            raise InputException(
                f"Unable to decode bundle resource {self.name}: {err}"
            ) from err
        raise InputException(
            f"Bundle resource {self.name} has unsupported encoding '{self.encoding}'"
        )


@dataclass
class BundleManifest(BaseManifest):
    """The source files of a bundle."""

    resources: list[BundleResource] = field(default_factory=list)
    """The files in the bundle."""


@dataclass
class DeploymentOptions(BaseManifest):
    """Options that control how a bundle is deployed."""

    values: dict[str, Any] | None = None
    """Value overrides merged into the chart's default values."""

    timeout_seconds: int = 0
    """Timeout for the deploy; a non-positive value uses the default."""

    default_namespace: str = ""
    """Namespace to install into; empty uses the default namespace."""

    kustomize_dir: str | None = None
    """Bundle directory holding a kustomization applied after rendering."""


@dataclass
class ConfigMap(BaseManifest):
    """A ConfigMap is an API object used to store data in key-value pairs."""

    kind: ClassVar[str] = CONFIG_MAP_KIND
    """The kind of the ConfigMap."""

    name: str
    """The name of the ConfigMap."""

    namespace: str | None = None
    """The namespace of the ConfigMap."""

    data: dict[str, Any] | None = field(metadata={"serialize": "omit"}, default=None)
    """The data in the ConfigMap."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ConfigMap":
        """Parse a config map object from a kubernetes resource."""
        _check_version(doc, "v1")
        if doc.get("kind") != CONFIG_MAP_KIND:
            raise InputException(f"Invalid {cls} expected kind ConfigMap: {doc}")
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid {cls} missing metadata: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid {cls} missing metadata.name: {doc}")
        return ConfigMap(
            name=name,
            namespace=metadata.get("namespace"),
            data=doc.get("data"),
        )


def _is_hidden(path: Path) -> bool:
    return any(part.startswith(".") for part in path.parts)


async def read_bundle(path: Path) -> BundleManifest:
    """Read all files under the path as a bundle.

    Hidden files and directories are skipped. Files that are not valid
    utf-8 are stored base64 encoded.
    """
    if not await isdir(path):
        raise InputException(f"Bundle path is not a directory: {path}")
    resources: list[BundleResource] = []
    for file_path in sorted(path.rglob("*")):
        rel_path = file_path.relative_to(path)
        if _is_hidden(rel_path) or not file_path.is_file():
            continue
        async with aiofiles.open(file_path, mode="rb") as bundle_file:
            content = await bundle_file.read()
        try:
            resources.append(
                BundleResource(
                    name=rel_path.as_posix(), content=content.decode("utf-8")
                )
            )
        except UnicodeDecodeError:
            resources.append(
                BundleResource(
                    name=rel_path.as_posix(),
                    content=base64.b64encode(content).decode("ascii"),
                    encoding=ENCODING_BASE64,
                )
            )
    _LOGGER.debug("Read %d resources from bundle %s", len(resources), path)
    return BundleManifest(resources=resources)
