"""Fleet-deployer delete action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from . import common


class DeleteAction:
    """Delete the release of a bundle."""

    @classmethod
    def register(
        cls,
        subparsers: SubParsersAction,  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "delete",
                help="Uninstall the release for a bundle",
            ),
        )
        args.add_argument("bundle_id", help="Id of the bundle to delete")
        common.add_common_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        bundle_id: str,
        kube_context: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        async with common.create_deployer(kube_context) as deployer:
            await deployer.delete(bundle_id)
