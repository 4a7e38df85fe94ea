"""Tests for the ownership library."""

import hashlib

import pytest

from fleet_deployer.exceptions import InputException
from fleet_deployer.ownership import (
    LABEL_HASH,
    LABEL_ID,
    labels_and_annotations,
    set_id,
    stamp,
)


def test_set_id() -> None:
    """Test the object set id of a bundle."""
    assert set_id("app-1") == "fleet-app-1"
    assert set_id("app-1", prefix="other") == "other-app-1"
    assert len(set_id("b" * 80)) == 63


def test_labels_and_annotations() -> None:
    """Test the ownership labels and annotations of an object set."""
    labels, annotations = labels_and_annotations("fleet-app-1")
    assert annotations == {LABEL_ID: "fleet-app-1"}
    expected = hashlib.sha1(
        LABEL_ID.encode() + "fleet-app-1".encode()
    ).hexdigest()
    assert labels == {LABEL_HASH: expected}


def test_labels_and_annotations_differ_by_set() -> None:
    """Test different object sets have different hash labels."""
    labels1, _ = labels_and_annotations("fleet-app-1")
    labels2, _ = labels_and_annotations("fleet-app-2")
    assert labels1 != labels2


def test_empty_set_id() -> None:
    """Test an empty object set id is rejected."""
    with pytest.raises(InputException, match="must be set"):
        labels_and_annotations("")


def test_stamp() -> None:
    """Test ownership is merged into existing metadata."""
    obj = {
        "kind": "ConfigMap",
        "metadata": {
            "name": "example",
            "labels": {"app": "example", LABEL_HASH: "stale"},
            "annotations": {"note": "kept"},
        },
    }
    stamp(obj, {LABEL_HASH: "abc"}, {LABEL_ID: "fleet-app-1"})
    assert obj["metadata"] == {
        "name": "example",
        "labels": {"app": "example", LABEL_HASH: "abc"},
        "annotations": {"note": "kept", LABEL_ID: "fleet-app-1"},
    }


def test_stamp_without_metadata() -> None:
    """Test metadata is created for an object without any."""
    obj: dict = {"kind": "ConfigMap"}
    stamp(obj, {LABEL_HASH: "abc"}, {LABEL_ID: "fleet-app-1"})
    assert obj["metadata"] == {
        "labels": {LABEL_HASH: "abc"},
        "annotations": {LABEL_ID: "fleet-app-1"},
    }


def test_stamp_invalid_labels() -> None:
    """Test labels that are not a map are rejected."""
    obj = {"kind": "ConfigMap", "metadata": {"labels": ["app"]}}
    with pytest.raises(InputException, match="metadata.labels"):
        stamp(obj, {LABEL_HASH: "abc"}, {LABEL_ID: "fleet-app-1"})


def test_stamp_invalid_metadata() -> None:
    """Test metadata that is not a map is rejected."""
    with pytest.raises(InputException, match="metadata"):
        stamp({"metadata": "x"}, {}, {})
