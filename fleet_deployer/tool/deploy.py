"""Fleet-deployer deploy action."""

import logging
import pathlib
from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from fleet_deployer.manifest import DeploymentOptions, read_bundle
from fleet_deployer.values import read_values_file

from .format import print_resources
from . import common


_LOGGER = logging.getLogger(__name__)


class DeployAction:
    """Deploy a bundle."""

    @classmethod
    def register(
        cls,
        subparsers: SubParsersAction,  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "deploy",
                help="Install or upgrade the release for a bundle",
                description=(
                    "Validate the bundle with a dry run then install, upgrade or "
                    "reinstall its release and print the deployed resources"
                ),
            ),
        )
        args.add_argument("bundle_id", help="Id of the bundle to deploy")
        args.add_argument(
            "path",
            type=pathlib.Path,
            help="Directory containing the bundle files",
        )
        args.add_argument(
            "--values",
            type=pathlib.Path,
            help="Yaml file with values to merge into the chart values",
        )
        args.add_argument(
            "--timeout",
            type=int,
            default=0,
            help="Seconds to wait for the release to become ready",
        )
        args.add_argument(
            "--namespace",
            "-n",
            default="",
            help="Namespace to install the release into",
        )
        args.add_argument(
            "--kustomize-dir",
            help="Bundle directory with a kustomization applied to the output",
        )
        common.add_common_flags(args)
        common.add_output_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        bundle_id: str,
        path: pathlib.Path,
        values: pathlib.Path | None,
        timeout: int,
        namespace: str,
        kustomize_dir: str | None,
        kube_context: str | None,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        bundle = await read_bundle(path)
        options = DeploymentOptions(
            values=await read_values_file(values) if values else None,
            timeout_seconds=timeout,
            default_namespace=namespace,
            kustomize_dir=kustomize_dir,
        )
        async with common.create_deployer(kube_context) as deployer:
            resources = await deployer.deploy(bundle_id, bundle, options)
        print_resources(resources, output)
