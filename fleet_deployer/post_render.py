"""Post-processing of manifests rendered from a bundle's chart.

The post renderer runs on the output of the chart renderer before anything is
applied. It applies the bundle's kustomize overlay, when one is configured,
and stamps every object with the labels and annotations that identify it as
owned by the bundle:
```python
from fleet_deployer.post_render import PostRender

post_render = PostRender("app-1", bundle, kustomize_dir="overlays/prod")
manifests = await post_render.run(rendered)
```
"""

import logging

import yaml

from . import kustomize, ownership
from .exceptions import FleetException, PostRenderException
from .manifest import BundleManifest, dump_objects, parse_objects

__all__ = [
    "PostRender",
]

_LOGGER = logging.getLogger(__name__)


class PostRender:
    """Post renderer scoped to the objects of a single bundle."""

    def __init__(
        self,
        bundle_id: str,
        bundle: BundleManifest | None = None,
        kustomize_dir: str | None = None,
        prefix: str = ownership.DEFAULT_PREFIX,
    ) -> None:
        """Initialize PostRender."""
        self.bundle_id = bundle_id
        self.bundle = bundle
        self.kustomize_dir = kustomize_dir
        self.prefix = prefix

    async def run(self, rendered: bytes) -> bytes:
        """Return the rendered manifests with the overlay and ownership applied.

        Either the complete output is returned or PostRenderException is
        raised, never a partially processed set of objects.
        """
        try:
            objects = parse_objects(rendered)
            overlay, applied = await kustomize.process(
                self.bundle, rendered, self.kustomize_dir
            )
            if applied:
                objects = overlay
            labels, annotations = ownership.labels_and_annotations(
                ownership.set_id(self.bundle_id, self.prefix)
            )
            for obj in objects:
                ownership.stamp(obj, labels, annotations)
            content = dump_objects(objects)
        except (FleetException, OSError, UnicodeDecodeError, yaml.YAMLError) as err:
            raise PostRenderException(
                f"Unable to post-render manifests for {self.bundle_id}: {err}"
            ) from err
        _LOGGER.debug(
            "Post-rendered %d objects for %s (overlay applied: %s)",
            len(objects),
            self.bundle_id,
            applied,
        )
        return content.encode("utf-8")
