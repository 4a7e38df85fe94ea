"""Fleet-deployer post-render action.

Helm runs this action as its post renderer: the rendered manifests are read
from stdin and the post-processed manifests are written to stdout.
"""

import logging
import pathlib
import sys
from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from fleet_deployer.manifest import read_bundle
from fleet_deployer.ownership import DEFAULT_PREFIX
from fleet_deployer.post_render import PostRender


_LOGGER = logging.getLogger(__name__)


class PostRenderAction:
    """Post-render manifests for a bundle."""

    @classmethod
    def register(
        cls,
        subparsers: SubParsersAction,  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "post-render",
                help="Post-render manifests read from stdin",
                description=(
                    "Apply the bundle's kustomize overlay and ownership labels to "
                    "the manifests read from stdin and write them to stdout"
                ),
            ),
        )
        args.add_argument(
            "--bundle-id", required=True, help="Id of the bundle that owns the objects"
        )
        args.add_argument(
            "--bundle-dir",
            type=pathlib.Path,
            help="Directory containing the bundle files",
        )
        args.add_argument(
            "--kustomize-dir",
            help="Bundle directory with a kustomization applied to the manifests",
        )
        args.add_argument(
            "--prefix",
            default=DEFAULT_PREFIX,
            help="Prefix of the object set id",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        bundle_id: str,
        bundle_dir: pathlib.Path | None,
        kustomize_dir: str | None,
        prefix: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        bundle = await read_bundle(bundle_dir) if bundle_dir else None
        post_render = PostRender(
            bundle_id, bundle, kustomize_dir=kustomize_dir, prefix=prefix
        )
        rendered = sys.stdin.buffer.read()
        _LOGGER.debug("Read %d bytes of rendered manifests", len(rendered))
        sys.stdout.buffer.write(await post_render.run(rendered))
        sys.stdout.buffer.flush()
