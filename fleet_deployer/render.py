"""Library for packaging a bundle as a helm chart archive.

A bundle that already contains a `Chart.yaml` is packaged as that chart. Any
other bundle is wrapped in a generated chart that holds each manifest file as a
template. Template delimiters in those manifests are escaped so the manifests
are rendered literally.
"""

import io
import logging
from pathlib import PurePosixPath
import tarfile
from typing import Any

import yaml

from .exceptions import InputException, RenderException
from .manifest import (
    BundleManifest,
    Chart,
    ChartMetadata,
    CHART_FILE,
    VALUES_FILE,
    TEMPLATES_DIR,
)
from .name import safe_concat_name

__all__ = [
    "to_chart",
    "load_archive",
]

_LOGGER = logging.getLogger(__name__)

GENERATED_CHART_VERSION = "v0.0.0"
BUNDLE_CONFIG_FILE = "fleet.yaml"
MANIFEST_SUFFIXES = {".yaml", ".yml", ".json"}
TEMPLATE_OPEN = "{{"
TEMPLATE_OPEN_ESCAPED = '{{"{{"}}'


def escape_template(content: str) -> str:
    """Escape template delimiters so the content renders as is."""
    return content.replace(TEMPLATE_OPEN, TEMPLATE_OPEN_ESCAPED)


def unescape_template(content: str) -> str:
    """Reverse `escape_template`."""
    return content.replace(TEMPLATE_OPEN_ESCAPED, TEMPLATE_OPEN)


def _chart_root(bundle: BundleManifest) -> PurePosixPath | None:
    """Return the directory of the shallowest Chart.yaml in the bundle."""
    roots = [
        PurePosixPath(resource.name).parent
        for resource in bundle.resources
        if PurePosixPath(resource.name).name == CHART_FILE
    ]
    if not roots:
        return None
    return min(roots, key=lambda root: (len(root.parts), str(root)))


def _chart_files(bundle: BundleManifest, root: PurePosixPath) -> dict[str, bytes]:
    files = {}
    for resource in bundle.resources:
        path = PurePosixPath(resource.name)
        if root.parts and path.parts[: len(root.parts)] != root.parts:
            continue
        rel_path = PurePosixPath(*path.parts[len(root.parts) :])
        files[rel_path.as_posix()] = resource.content_bytes()
    return files


def _generated_chart_files(bundle_id: str, bundle: BundleManifest) -> dict[str, bytes]:
    metadata = ChartMetadata(
        name=safe_concat_name(bundle_id), version=GENERATED_CHART_VERSION
    )
    files = {
        CHART_FILE: yaml.dump(metadata.to_dict(), sort_keys=False).encode(),
    }
    for resource in bundle.resources:
        path = PurePosixPath(resource.name)
        if path.name == BUNDLE_CONFIG_FILE or path.suffix not in MANIFEST_SUFFIXES:
            continue
        content = escape_template(resource.content_bytes().decode("utf-8"))
        files[f"{TEMPLATES_DIR}/{path.as_posix()}"] = content.encode("utf-8")
    return files


def to_chart(bundle_id: str, bundle: BundleManifest) -> bytes:
    """Package the bundle as a gzipped chart archive."""
    try:
        if (root := _chart_root(bundle)) is not None:
            _LOGGER.debug("Packaging bundle %s chart in '%s'", bundle_id, root)
            files = _chart_files(bundle, root)
        else:
            _LOGGER.debug("Generating chart for bundle %s", bundle_id)
            files = _generated_chart_files(bundle_id, bundle)
    except (InputException, UnicodeDecodeError) as err:
        raise RenderException(f"Unable to render bundle {bundle_id}: {err}") from err

    top_dir = safe_concat_name(bundle_id)
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        for path, content in sorted(files.items()):
            info = tarfile.TarInfo(name=f"{top_dir}/{path}")
            info.size = len(content)
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(content))
    return buf.getvalue()


def _load_yaml(name: str, content: bytes) -> Any:
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise RenderException(f"Unable to parse chart file {name}: {err}") from err


def load_archive(data: bytes) -> Chart:
    """Load a chart from a gzipped chart archive."""
    files: dict[str, bytes] = {}
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as archive:
            for member in archive.getmembers():
                if not member.isfile():
                    continue
                parts = PurePosixPath(member.name).parts
                if len(parts) < 2 or ".." in parts:
                    raise RenderException(
                        f"Invalid chart archive entry '{member.name}'"
                    )
                if (extracted := archive.extractfile(member)) is None:
                    continue
                files[PurePosixPath(*parts[1:]).as_posix()] = extracted.read()
    except (tarfile.TarError, OSError) as err:
        raise RenderException(f"Unable to read chart archive: {err}") from err

    if (chart_yaml := files.pop(CHART_FILE, None)) is None:
        raise RenderException(f"Chart archive is missing {CHART_FILE}")
    try:
        metadata = ChartMetadata.parse_doc(_load_yaml(CHART_FILE, chart_yaml))
    except InputException as err:
        raise RenderException(str(err)) from err
    values: dict[str, Any] = {}
    if (values_yaml := files.pop(VALUES_FILE, None)) is not None:
        doc = _load_yaml(VALUES_FILE, values_yaml)
        if doc is not None and not isinstance(doc, dict):
            raise RenderException(f"Chart {VALUES_FILE} must contain a map")
        values = doc or {}
    return Chart(metadata=metadata, values=values, files=files)
