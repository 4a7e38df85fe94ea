"""Output of the results of the fleet-deployer actions."""

import json
import sys
from typing import TextIO

import yaml

from fleet_deployer.deployer import Resources

OUTPUT_FORMATS = ("yaml", "json")
BUNDLE_ID_HEADER = "BUNDLE_ID"


def print_resources(
    resources: Resources, output: str = "yaml", file: TextIO | None = None
) -> None:
    """Print the resources of a release version as a single document."""
    file = file or sys.stdout
    data = resources.to_dict()
    if output == "json":
        print(json.dumps(data, indent=4), file=file)
        return
    print(yaml.dump(data, sort_keys=False, explicit_start=True), end="", file=file)


def print_bundle_ids(bundle_ids: list[str], file: TextIO | None = None) -> None:
    """Print the bundle ids as a column under a header."""
    file = file or sys.stdout
    print(BUNDLE_ID_HEADER, file=file)
    for bundle_id in bundle_ids:
        print(bundle_id, file=file)
