"""Tests for the fleet-deployer post-render action."""

import io
from pathlib import Path
import sys
from typing import Any

import pytest

from fleet_deployer.exceptions import PostRenderException
from fleet_deployer.manifest import parse_objects
from fleet_deployer.tool.post_render import PostRenderAction

RENDERED = b"""---
apiVersion: v1
kind: ConfigMap
metadata:
  name: app-config
"""


class FakeStream:
    """A text stream backed by a binary buffer."""

    def __init__(self, content: bytes = b"") -> None:
        self.buffer = io.BytesIO(content)


async def _run(monkeypatch: pytest.MonkeyPatch, stdin: bytes, **kwargs: Any) -> bytes:
    stdout = FakeStream()
    monkeypatch.setattr(sys, "stdin", FakeStream(stdin))
    monkeypatch.setattr(sys, "stdout", stdout)
    await PostRenderAction().run(**kwargs)
    return stdout.buffer.getvalue()


async def test_post_render(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test manifests from stdin are stamped and written to stdout."""
    output = await _run(
        monkeypatch,
        RENDERED,
        bundle_id="app-1",
        bundle_dir=None,
        kustomize_dir=None,
        prefix="fleet",
    )
    [obj] = parse_objects(output)
    assert obj["metadata"]["annotations"] == {
        "objectset.rio.cattle.io/id": "fleet-app-1"
    }


async def test_post_render_bundle_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """Test a bundle directory without a kustomization keeps the manifests."""
    (tmp_path / "configmap.yaml").write_text(RENDERED.decode())
    output = await _run(
        monkeypatch,
        RENDERED,
        bundle_id="app-1",
        bundle_dir=tmp_path,
        kustomize_dir="overlay",
        prefix="custom",
    )
    [obj] = parse_objects(output)
    assert obj["metadata"]["annotations"] == {
        "objectset.rio.cattle.io/id": "custom-app-1"
    }


async def test_post_render_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test invalid manifests produce no output."""
    stdout = FakeStream()
    monkeypatch.setattr(sys, "stdin", FakeStream(b"foo: !bar\n"))
    monkeypatch.setattr(sys, "stdout", stdout)
    with pytest.raises(PostRenderException):
        await PostRenderAction().run(
            bundle_id="app-1", bundle_dir=None, kustomize_dir=None, prefix="fleet"
        )
    assert stdout.buffer.getvalue() == b""
