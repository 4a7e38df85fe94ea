"""Fleet-deployer list action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from .format import print_bundle_ids
from . import common


class ListAction:
    """List the bundles with a release in the cluster."""

    @classmethod
    def register(
        cls,
        subparsers: SubParsersAction,  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "list",
                aliases=["ls"],
                help="List the bundles deployed to the cluster",
            ),
        )
        common.add_common_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        kube_context: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        async with common.create_deployer(kube_context) as deployer:
            bundle_ids = await deployer.list_deployments()
        if not bundle_ids:
            print("No deployments found")
            return
        print_bundle_ids(bundle_ids)
