"""Fleet-deployer resources action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from .format import print_resources
from . import common


class ResourcesAction:
    """Print the objects of a version of a release."""

    @classmethod
    def register(
        cls,
        subparsers: SubParsersAction,  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "resources",
                help="Print the objects of a release version",
                description=(
                    "Print the objects deployed for a bundle by the release "
                    "version with the handle `name:version`"
                ),
            ),
        )
        args.add_argument("bundle_id", help="Id of the bundle")
        args.add_argument("resources_id", help="Handle of the release version")
        common.add_common_flags(args)
        common.add_output_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        bundle_id: str,
        resources_id: str,
        kube_context: str | None,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        async with common.create_deployer(kube_context) as deployer:
            resources = await deployer.resources(bundle_id, resources_id)
        print_resources(resources, output)
