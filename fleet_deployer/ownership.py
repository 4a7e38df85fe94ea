"""Labels and annotations that mark objects as owned by a deployment.

Every object produced for a bundle carries the same set id annotation, and a
label holding a hash of the ownership annotations that can be used in a
label selector to find all objects of the set.
"""

import hashlib
from typing import Any

from .exceptions import InputException
from .name import safe_concat_name

__all__ = [
    "set_id",
    "labels_and_annotations",
    "stamp",
]

DEFAULT_PREFIX = "fleet"
LABEL_ID = "objectset.rio.cattle.io/id"
LABEL_HASH = "objectset.rio.cattle.io/hash"


def set_id(bundle_id: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Return the object set id for the objects of a bundle."""
    return safe_concat_name(prefix, bundle_id)


def _object_set_hash(annotations: dict[str, str]) -> str:
    digest = hashlib.sha1()
    for key in sorted(annotations):
        digest.update(key.encode("utf-8"))
        digest.update(annotations[key].encode("utf-8"))
    return digest.hexdigest()


def labels_and_annotations(
    object_set_id: str,
) -> tuple[dict[str, str], dict[str, str]]:
    """Return the ownership labels and annotations for an object set."""
    if not object_set_id:
        raise InputException("Object set id must be set")
    annotations = {LABEL_ID: object_set_id}
    labels = {LABEL_HASH: _object_set_hash(annotations)}
    return labels, annotations


def _merged(
    obj: dict[str, Any], metadata: dict[str, Any], key: str, values: dict[str, str]
) -> dict[str, Any]:
    existing = metadata.get(key)
    if existing is None:
        existing = {}
    if not isinstance(existing, dict):
        raise InputException(
            f"Invalid object {obj.get('kind')} metadata.{key}, "
            f"expected a map: {existing!r}"
        )
    return {**existing, **values}


def stamp(
    obj: dict[str, Any], labels: dict[str, str], annotations: dict[str, str]
) -> None:
    """Merge ownership labels and annotations into the object metadata.

    Existing keys are preserved and the ownership values win on collision.
    """
    metadata = obj.get("metadata")
    if metadata is None:
        metadata = {}
        obj["metadata"] = metadata
    if not isinstance(metadata, dict):
        raise InputException(
            f"Invalid object {obj.get('kind')} metadata, expected a map: {metadata!r}"
        )
    metadata["labels"] = _merged(obj, metadata, "labels", labels)
    metadata["annotations"] = _merged(obj, metadata, "annotations", annotations)
