"""Flags and helpers shared by the fleet-deployer actions."""

from argparse import ArgumentParser
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
import tempfile

from fleet_deployer.config import DeployerConfig
from fleet_deployer.helm import Helm
from fleet_deployer.helm_deployer import HelmDeployer

from .format import OUTPUT_FORMATS


def add_common_flags(args: ArgumentParser) -> None:
    """Add flags for selecting the target cluster."""
    args.add_argument(
        "--kube-context",
        type=str,
        help="Name of the kubeconfig context to use",
    )


def add_output_flags(args: ArgumentParser) -> None:
    """Add flags for the output format of a result."""
    args.add_argument(
        "--output",
        "-o",
        choices=OUTPUT_FORMATS,
        default="yaml",
        help="Output format of the result",
    )


@asynccontextmanager
async def create_deployer(
    kube_context: str | None = None,
) -> AsyncGenerator[HelmDeployer, None]:
    """Create a deployer backed by helm with a scratch directory."""
    config = DeployerConfig()
    with tempfile.TemporaryDirectory() as tmp_dir:
        helm = Helm(
            Path(tmp_dir), kube_context=kube_context, max_history=config.max_history
        )
        yield HelmDeployer(helm, config)
