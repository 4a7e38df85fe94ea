"""Read release history from the secrets written by helm.

Helm stores each release version in a Secret labeled with `owner=helm`, the
release name, status and version. The `release` data key holds the release
as gzipped json, base64 encoded by helm and again by kubernetes.
"""

import base64
import binascii
import gzip
import json
import logging
from typing import Any

from fleet_deployer import command
from fleet_deployer.exceptions import (
    CommandException,
    HistoryUnavailableError,
    InputException,
    NoDeployedReleasesError,
    ReleaseNotFoundError,
    TimeoutExceededError,
)
from fleet_deployer.manifest import Release, ReleaseStatus

from .store import ReleaseReader

_LOGGER = logging.getLogger(__name__)

KUBECTL_BIN = "kubectl"
OWNER_SELECTOR = "owner=helm"
RELEASE_KEY = "release"
GZIP_MAGIC = b"\x1f\x8b\x08"


def decode_release(data: str) -> Release:
    """Decode the release stored in the data of a helm secret."""
    try:
        raw = base64.b64decode(base64.b64decode(data))
        if raw[: len(GZIP_MAGIC)] == GZIP_MAGIC:
            raw = gzip.decompress(raw)
        doc = json.loads(raw)
    except (binascii.Error, OSError, ValueError) as err:
        raise InputException(f"Unable to decode helm release: {err}") from err
    if not isinstance(doc, dict):
        raise InputException("Unable to decode helm release, expected an object")
    return Release.from_helm(doc)


class HelmSecretsReader(ReleaseReader):
    """Reads release history from helm secrets using kubectl."""

    def __init__(
        self, namespace: str | None = None, kubectl_args: list[str] | None = None
    ) -> None:
        """Initialize HelmSecretsReader.

        Args:
            namespace: Namespace holding the release secrets, or None for all.
            kubectl_args: Extra flags for kubectl such as `--context`.
        """
        self._namespace = namespace
        self._kubectl_args = kubectl_args or []

    async def _query(self, **labels: str) -> list[Release]:
        selector = ",".join(
            [OWNER_SELECTOR] + [f"{key}={value}" for key, value in labels.items()]
        )
        args = [KUBECTL_BIN, "get", "secrets", "-l", selector, "-o", "json"]
        if self._namespace:
            args.extend(["--namespace", self._namespace])
        else:
            args.append("--all-namespaces")
        args.extend(self._kubectl_args)
        try:
            out = await command.run(command.Command(args))
        except (CommandException, TimeoutExceededError) as err:
            raise HistoryUnavailableError(
                f"Unable to read release history ({selector}): {err}"
            ) from err
        try:
            doc: dict[str, Any] = json.loads(out)
        except ValueError as err:
            raise HistoryUnavailableError(
                f"Unable to parse release history ({selector}): {err}"
            ) from err
        releases = []
        for item in doc.get("items", []):
            if not (data := (item.get("data") or {}).get(RELEASE_KEY)):
                _LOGGER.warning(
                    "Helm secret %s has no release data",
                    item.get("metadata", {}).get("name"),
                )
                continue
            releases.append(decode_release(data))
        releases.sort(key=lambda r: (r.name, r.version))
        _LOGGER.debug("Found %d release records for %s", len(releases), selector)
        return releases

    async def last(self, name: str) -> Release:
        """Return the most recent record for the release."""
        if not (releases := await self._query(name=name)):
            raise ReleaseNotFoundError(name)
        return releases[-1]

    async def deployed(self, name: str) -> Release:
        """Return the most recent record with deployed status."""
        releases = await self._query(name=name)
        deployed = [r for r in releases if r.status == ReleaseStatus.DEPLOYED]
        if not deployed:
            raise NoDeployedReleasesError(name)
        return deployed[-1]

    async def history(self, name: str) -> list[Release]:
        """Return all records for the release ordered by version."""
        return await self._query(name=name)

    async def list_releases(self) -> list[Release]:
        """Return all records of all releases."""
        return await self._query()
