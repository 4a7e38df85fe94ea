"""Tests for the in-memory cluster."""

import asyncio
import datetime
from typing import Any

import pytest

from fleet_deployer.backend import InstallOptions, UninstallOptions, UpgradeOptions
from fleet_deployer.cluster import InMemoryCluster
from fleet_deployer.exceptions import ActionFailedError, TimeoutExceededError
from fleet_deployer.manifest import (
    BundleManifest,
    Chart,
    ChartMetadata,
    Release,
    ReleaseStatus,
)
from fleet_deployer.post_render import PostRender
from fleet_deployer.render import load_archive, to_chart

TIMEOUT = datetime.timedelta(seconds=5)


@pytest.fixture(name="chart")
def chart_fixture(bundle: BundleManifest) -> Chart:
    """A chart rendered from the bundle."""
    return load_archive(to_chart("app-1", bundle))


def _install_options(**kwargs: Any) -> InstallOptions:
    return InstallOptions(
        release_name="app-1", namespace="default", timeout=TIMEOUT, **kwargs
    )


async def test_install(cluster: InMemoryCluster, chart: Chart) -> None:
    """Test installing a release."""
    release = await cluster.install(chart, {"replicas": 2}, _install_options())
    assert release.resource_id == "app-1:1"
    assert release.status == ReleaseStatus.DEPLOYED
    assert release.values == {"replicas": 2}
    assert [obj["kind"] for obj in cluster.objects["app-1"]] == ["ConfigMap"]
    assert await cluster.releases.history("app-1") == [release]


async def test_install_dry_run(cluster: InMemoryCluster, chart: Chart) -> None:
    """Test a dry run install does not change the cluster."""
    release = await cluster.install(
        chart, {}, _install_options(dry_run=True, create_namespace=True)
    )
    assert release.status == ReleaseStatus.PENDING_INSTALL
    assert "app-config" in release.manifest
    assert cluster.objects == {}
    assert await cluster.releases.history("app-1") == []


async def test_install_namespace(cluster: InMemoryCluster, chart: Chart) -> None:
    """Test the namespace must exist unless it is created."""
    options = InstallOptions(release_name="app-1", namespace="apps", timeout=TIMEOUT)
    with pytest.raises(ActionFailedError, match='namespaces "apps" not found'):
        await cluster.install(chart, {}, options)

    options.create_namespace = True
    await cluster.install(chart, {}, options)
    assert "apps" in cluster.namespaces


async def test_install_name_in_use(cluster: InMemoryCluster, chart: Chart) -> None:
    """Test a deployed release name can't be installed again."""
    await cluster.install(chart, {}, _install_options())
    with pytest.raises(ActionFailedError, match="still in use"):
        await cluster.install(chart, {}, _install_options(replace=True))


async def test_install_replace(cluster: InMemoryCluster, chart: Chart) -> None:
    """Test replacing a failed release."""
    await cluster.releases.append(
        Release(
            name="app-1",
            namespace="default",
            version=1,
            status=ReleaseStatus.FAILED,
        )
    )
    with pytest.raises(ActionFailedError, match="still in use"):
        await cluster.install(chart, {}, _install_options())
    release = await cluster.install(chart, {}, _install_options(replace=True))
    assert release.resource_id == "app-1:2"


async def test_install_post_render(cluster: InMemoryCluster, chart: Chart) -> None:
    """Test the post renderer output is recorded."""
    release = await cluster.install(
        chart, {}, _install_options(post_renderer=PostRender("app-1"))
    )
    [obj] = cluster.objects["app-1"]
    assert obj["metadata"]["annotations"] == {
        "objectset.rio.cattle.io/id": "fleet-app-1"
    }
    assert "objectset.rio.cattle.io/id: fleet-app-1" in release.manifest


async def test_install_chart_values(cluster: InMemoryCluster) -> None:
    """Test values are merged over the chart defaults."""
    chart = Chart(
        metadata=ChartMetadata(name="app", version="1.0.0"),
        values={"image": {"repository": "nginx", "tag": "v1"}},
    )
    release = await cluster.install(chart, {"image": {"tag": "v2"}}, _install_options())
    assert release.values == {"image": {"repository": "nginx", "tag": "v2"}}


async def test_install_invalid_manifest(cluster: InMemoryCluster) -> None:
    """Test a chart with manifests that are not objects fails."""
    chart = Chart(
        metadata=ChartMetadata(name="app", version="1.0.0"),
        files={"templates/bad.yaml": b"- a\n- b\n"},
    )
    with pytest.raises(ActionFailedError, match="Unable to build kubernetes objects"):
        await cluster.install(chart, {}, _install_options())
    assert await cluster.releases.history("app-1") == []


async def test_install_timeout(bundle: BundleManifest, chart: Chart) -> None:
    """Test a release that never becomes ready times out with no record."""

    async def never_ready(release: Release, objects: list[dict[str, Any]]) -> None:
        await asyncio.sleep(60)

    cluster = InMemoryCluster(readiness=never_ready)
    options = InstallOptions(
        release_name="app-1",
        namespace="default",
        timeout=datetime.timedelta(seconds=0.05),
    )
    with pytest.raises(TimeoutExceededError, match="not ready"):
        await cluster.install(chart, {}, options)
    assert cluster.objects == {}
    assert await cluster.releases.history("app-1") == []


async def test_replace_timeout_keeps_objects(chart: Chart) -> None:
    """Test a replace that times out leaves the failed release objects."""

    async def never_ready(release: Release, objects: list[dict[str, Any]]) -> None:
        await asyncio.sleep(60)

    cluster = InMemoryCluster(readiness=never_ready)
    failed = Release(
        name="app-1", namespace="default", version=1, status=ReleaseStatus.FAILED
    )
    await cluster.releases.append(failed)
    leftover = [{"kind": "Secret", "metadata": {"name": "left-behind"}}]
    cluster.objects["app-1"] = leftover
    options = InstallOptions(
        release_name="app-1",
        namespace="default",
        timeout=datetime.timedelta(seconds=0.05),
        replace=True,
    )
    with pytest.raises(TimeoutExceededError):
        await cluster.install(chart, {}, options)
    assert cluster.objects["app-1"] == leftover
    assert await cluster.releases.history("app-1") == [failed]


async def test_upgrade(cluster: InMemoryCluster, chart: Chart) -> None:
    """Test upgrading a release supersedes the prior version."""
    await cluster.install(chart, {}, _install_options())
    options = UpgradeOptions(namespace="default", timeout=TIMEOUT, atomic=True)
    release = await cluster.upgrade("app-1", chart, {"replicas": 3}, options)
    assert release.resource_id == "app-1:2"
    history = await cluster.releases.history("app-1")
    assert [(r.version, r.status) for r in history] == [
        (1, ReleaseStatus.SUPERSEDED),
        (2, ReleaseStatus.DEPLOYED),
    ]


async def test_upgrade_not_deployed(cluster: InMemoryCluster, chart: Chart) -> None:
    """Test upgrading a release that is not deployed fails."""
    options = UpgradeOptions(namespace="default", timeout=TIMEOUT)
    with pytest.raises(ActionFailedError, match="has no deployed releases"):
        await cluster.upgrade("app-1", chart, {}, options)


async def test_upgrade_never_creates_namespace(
    cluster: InMemoryCluster, chart: Chart
) -> None:
    """Test upgrading into a missing namespace fails."""
    await cluster.install(chart, {}, _install_options())
    options = UpgradeOptions(namespace="apps", timeout=TIMEOUT)
    with pytest.raises(ActionFailedError, match='namespaces "apps" not found'):
        await cluster.upgrade("app-1", chart, {}, options)
    assert "apps" not in cluster.namespaces


async def test_upgrade_atomic_rollback(chart: Chart) -> None:
    """Test a failed atomic upgrade restores the prior objects."""
    ready = True

    async def readiness(release: Release, objects: list[dict[str, Any]]) -> None:
        if not ready:
            raise asyncio.TimeoutError()

    cluster = InMemoryCluster(readiness=readiness)
    await cluster.install(chart, {}, _install_options())
    previous = cluster.objects["app-1"]

    ready = False
    options = UpgradeOptions(
        namespace="default",
        timeout=TIMEOUT,
        atomic=True,
        post_renderer=PostRender("app-1"),
    )
    with pytest.raises(TimeoutExceededError):
        await cluster.upgrade("app-1", chart, {}, options)
    assert cluster.objects["app-1"] is previous
    history = await cluster.releases.history("app-1")
    assert [(r.version, r.status) for r in history] == [(1, ReleaseStatus.DEPLOYED)]


async def test_uninstall(cluster: InMemoryCluster, chart: Chart) -> None:
    """Test uninstalling removes objects and history."""
    await cluster.install(chart, {}, _install_options())

    await cluster.uninstall("app-1", UninstallOptions(dry_run=True))
    assert "app-1" in cluster.objects
    assert len(await cluster.releases.history("app-1")) == 1

    await cluster.uninstall("app-1", UninstallOptions())
    assert "app-1" not in cluster.objects
    assert await cluster.releases.history("app-1") == []


async def test_uninstall_not_found(cluster: InMemoryCluster) -> None:
    """Test uninstalling an unknown release fails."""
    with pytest.raises(ActionFailedError, match="Release not loaded"):
        await cluster.uninstall("app-1", UninstallOptions())
