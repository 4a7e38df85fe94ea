"""Module for in memory release storage."""

import asyncio
from collections import defaultdict
import dataclasses
import logging

from fleet_deployer.exceptions import (
    NoDeployedReleasesError,
    ReleaseExistsError,
    ReleaseNotFoundError,
)
from fleet_deployer.manifest import Release, ReleaseStatus

from .store import ReleaseStorage, MAX_HISTORY

_LOGGER = logging.getLogger(__name__)


class InMemoryReleaseStorage(ReleaseStorage):
    """In-memory implementation of the ReleaseStorage interface.

    Records are kept per release name ordered by version. Writes are
    serialized with a lock so that appending a record and superseding the
    previously deployed record happen as one step.
    """

    def __init__(self, max_history: int = MAX_HISTORY) -> None:
        """Initialize the InMemoryReleaseStorage."""
        self.max_history = max_history
        self._releases: defaultdict[str, list[Release]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def last(self, name: str) -> Release:
        """Return the most recent record for the release."""
        if not (records := self._releases.get(name)):
            raise ReleaseNotFoundError(name)
        return records[-1]

    async def deployed(self, name: str) -> Release:
        """Return the most recent record with deployed status."""
        for release in reversed(self._releases.get(name, [])):
            if release.status == ReleaseStatus.DEPLOYED:
                return release
        raise NoDeployedReleasesError(name)

    async def history(self, name: str) -> list[Release]:
        """Return all records for the release ordered by version."""
        return list(self._releases.get(name, []))

    async def list_releases(self) -> list[Release]:
        """Return all records of all releases."""
        return [
            release
            for name in sorted(self._releases)
            for release in self._releases[name]
        ]

    async def append(self, release: Release) -> None:
        """Record a new version of a release."""
        async with self._lock:
            records = self._releases[release.name]
            if any(existing.version == release.version for existing in records):
                raise ReleaseExistsError(
                    f"Release {release.resource_id} is already recorded"
                )
            if release.status == ReleaseStatus.DEPLOYED:
                records[:] = [
                    (
                        dataclasses.replace(existing, status=ReleaseStatus.SUPERSEDED)
                        if existing.status == ReleaseStatus.DEPLOYED
                        else existing
                    )
                    for existing in records
                ]
            records.append(release)
            records.sort(key=lambda r: r.version)
            if self.max_history > 0 and len(records) > self.max_history:
                pruned = records[: len(records) - self.max_history]
                _LOGGER.debug(
                    "Pruning %s versions %s",
                    release.name,
                    [r.version for r in pruned],
                )
                del records[: len(pruned)]
            _LOGGER.debug(
                "Recorded release %s with status %s",
                release.resource_id,
                release.status,
            )

    async def update(self, release: Release) -> None:
        """Replace an existing version of a release."""
        async with self._lock:
            records = self._releases.get(release.name, [])
            for i, existing in enumerate(records):
                if existing.version == release.version:
                    records[i] = release
                    return
            raise ReleaseNotFoundError(release.name)

    async def purge(self, name: str) -> None:
        """Remove all records of a release."""
        async with self._lock:
            self._releases.pop(name, None)
