"""Tests for kustomize library."""

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from fleet_deployer import command, kustomize
from fleet_deployer.exceptions import InputException, KustomizeException
from fleet_deployer.manifest import BundleManifest, BundleResource

KUSTOMIZATION = """---
apiVersion: kustomize.config.k8s.io/v1beta1
kind: Kustomization
namePrefix: prod-
"""

RENDERED = b"""---
apiVersion: v1
kind: ConfigMap
metadata:
  name: app-config
"""

OVERLAY_OUTPUT = """---
apiVersion: v1
kind: ConfigMap
metadata:
  name: prod-app-config
"""


@pytest.fixture(name="overlay_bundle")
def overlay_bundle_fixture() -> BundleManifest:
    """A bundle with a kustomize overlay."""
    return BundleManifest(
        resources=[
            BundleResource(name="configmap.yaml", content=RENDERED.decode()),
            BundleResource(
                name="overlays/prod/kustomization.yaml", content=KUSTOMIZATION
            ),
        ]
    )


async def test_objects_failure() -> None:
    """Test unparsable command output."""

    class FakeTask(command.Task):
        async def run(self, stdin: bytes | None = None) -> bytes:
            """Execute the task and return the result."""
            return b"foo: !bar\n"

    with pytest.raises(KustomizeException, match="Unable to parse command output"):
        await kustomize.Kustomize(FakeTask()).objects()


def test_build_command() -> None:
    """Test the command used to build a kustomization."""
    cmd = kustomize.build(Path("/tmp/overlay"))
    assert "kustomize build ." in str(cmd._cmd)


async def test_process_without_dir(overlay_bundle: BundleManifest) -> None:
    """Test no overlay is applied when no directory is configured."""
    with patch("fleet_deployer.kustomize.run") as mock_run:
        assert await kustomize.process(overlay_bundle, RENDERED, None) == ([], False)
        assert await kustomize.process(None, RENDERED, "overlays/prod") == ([], False)
    mock_run.assert_not_called()


async def test_process_without_kustomization(overlay_bundle: BundleManifest) -> None:
    """Test no overlay is applied when the directory has no kustomization."""
    with patch("fleet_deployer.kustomize.run") as mock_run:
        result = await kustomize.process(overlay_bundle, RENDERED, "overlays/dev")
    assert result == ([], False)
    mock_run.assert_not_called()


async def test_process(overlay_bundle: BundleManifest) -> None:
    """Test the overlay is built with the rendered manifests as a resource."""
    inputs: dict[str, str] = {}

    async def fake_run(cmd: command.Command, stdin: bytes | None = None) -> str:
        assert cmd.cmd == ["kustomize", "build", "."]
        assert cmd.cwd is not None
        inputs["kustomization"] = (cmd.cwd / "kustomization.yaml").read_text()
        inputs["manifests"] = (cmd.cwd / "manifests.yaml").read_text()
        return OVERLAY_OUTPUT

    with patch("fleet_deployer.kustomize.run", side_effect=fake_run):
        objects, applied = await kustomize.process(
            overlay_bundle, RENDERED, "overlays/prod"
        )

    assert applied
    assert objects == [yaml.safe_load(OVERLAY_OUTPUT)]
    assert objects[0]["metadata"]["name"] == "prod-app-config"
    kustomization = yaml.safe_load(inputs["kustomization"])
    assert kustomization["resources"] == ["manifests.yaml"]
    assert kustomization["namePrefix"] == "prod-"
    assert inputs["manifests"] == RENDERED.decode()


async def test_process_invalid_dir(overlay_bundle: BundleManifest) -> None:
    """Test an overlay directory outside the bundle is rejected."""
    with pytest.raises(InputException, match="escapes the bundle root"):
        await kustomize.process(overlay_bundle, RENDERED, "../elsewhere")


def test_with_manifests_resource() -> None:
    """Test the rendered manifests are added before existing resources."""
    content = kustomize._with_manifests_resource("resources:\n- extra.yaml\n")
    assert yaml.safe_load(content) == {"resources": ["manifests.yaml", "extra.yaml"]}
    content = kustomize._with_manifests_resource(
        "resources:\n- manifests.yaml\n- extra.yaml\n"
    )
    assert yaml.safe_load(content) == {"resources": ["manifests.yaml", "extra.yaml"]}
    with pytest.raises(InputException, match="expected a list"):
        kustomize._with_manifests_resource("resources: extra.yaml\n")
