"""Fixtures shared by the fleet-deployer tests."""

import pytest

from fleet_deployer.cluster import InMemoryCluster
from fleet_deployer.helm_deployer import HelmDeployer
from fleet_deployer.manifest import BundleManifest, BundleResource

CONFIG_MAP = """apiVersion: v1
kind: ConfigMap
metadata:
  name: app-config
  labels:
    app: example
data:
  greeting: hello
"""


@pytest.fixture(name="bundle")
def bundle_fixture() -> BundleManifest:
    """A bundle of plain manifests."""
    return BundleManifest(
        resources=[
            BundleResource(name="configmap.yaml", content=CONFIG_MAP),
            BundleResource(name="fleet.yaml", content="namespace: apps\n"),
        ]
    )


@pytest.fixture(name="cluster")
def cluster_fixture() -> InMemoryCluster:
    """An empty in-memory cluster."""
    return InMemoryCluster()


@pytest.fixture(name="deployer")
def deployer_fixture(cluster: InMemoryCluster) -> HelmDeployer:
    """A deployer that applies releases to the in-memory cluster."""
    return HelmDeployer(cluster)
