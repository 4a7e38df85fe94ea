"""Module for working with helm value overrides.

Values are a loosely typed tree of maps, lists and scalars as found in a
`values.yaml` file. Overrides supplied for a deployment are validated against
that shape and then merged over the defaults from the chart.
"""

from collections.abc import Mapping
import logging
from pathlib import Path
from typing import Any, TypeAlias

import aiofiles
import yaml

from .exceptions import InputException

__all__ = [
    "Value",
    "Values",
    "check_values",
    "merge_values",
    "read_values_file",
]

_LOGGER = logging.getLogger(__name__)


Value: TypeAlias = (
    str | int | float | bool | None | list["Value"] | dict[str, "Value"]
)
Values: TypeAlias = dict[str, Value]

_SCALARS = (str, int, float, bool)


def _check_value(path: str, value: Any) -> Value:
    if value is None or isinstance(value, _SCALARS):
        return value
    if isinstance(value, Mapping):
        result: dict[str, Value] = {}
        for key, child in value.items():
            if not isinstance(key, str):
                raise InputException(
                    f"Invalid values key {key!r} at '{path or '.'}', "
                    "keys must be strings"
                )
            result[key] = _check_value(f"{path}.{key}", child)
        return result
    if isinstance(value, (list, tuple)):
        return [_check_value(f"{path}[{i}]", child) for i, child in enumerate(value)]
    raise InputException(
        f"Invalid values at '{path or '.'}': unsupported type {type(value).__name__}"
    )


def check_values(values: Mapping[str, Any] | None) -> Values:
    """Return a copy of the values validated as a value tree.

    Raises InputException if the values contain anything other than maps
    with string keys, lists, strings, numbers, booleans or nulls.
    """
    if values is None:
        return {}
    checked = _check_value("", values)
    if not isinstance(checked, dict):
        raise InputException("Invalid values, expected a map at the top level")
    return checked


def merge_values(base: Values, overrides: Values) -> Values:
    """Merge the overrides into the base values, returning a new tree.

    Maps are merged recursively and any other value in the overrides
    replaces the base value. An explicit null in the overrides removes
    the key from the result.
    """
    result: Values = dict(base)
    for key, value in overrides.items():
        if value is None:
            result.pop(key, None)
            continue
        existing = result.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            result[key] = merge_values(existing, value)
        else:
            result[key] = value
    return result


async def read_values_file(path: Path) -> Values:
    """Read value overrides from a yaml file."""
    _LOGGER.debug("Reading values from %s", path)
    async with aiofiles.open(path) as values_file:
        content = await values_file.read()
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse values file {path}: {err}") from err
    if doc is not None and not isinstance(doc, dict):
        raise InputException(f"Values file {path} must contain a map")
    return check_values(doc)
