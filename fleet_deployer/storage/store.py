"""Store module for holding the history of releases."""

from abc import ABC, abstractmethod

from fleet_deployer.manifest import Release

MAX_HISTORY = 5


class ReleaseReader(ABC):
    """Abstract base class for read access to release history."""

    @abstractmethod
    async def last(self, name: str) -> Release:
        """Return the most recent record for the release.

        Raises:
            ReleaseNotFoundError: If there are no records for the release.
            HistoryUnavailableError: If the backend can't be queried.
        """

    @abstractmethod
    async def deployed(self, name: str) -> Release:
        """Return the most recent record with deployed status.

        Raises:
            NoDeployedReleasesError: If no record is deployed, including when
                there are no records at all.
            HistoryUnavailableError: If the backend can't be queried.
        """

    @abstractmethod
    async def history(self, name: str) -> list[Release]:
        """Return all records for the release ordered by version.

        An unknown release has an empty history.
        """

    @abstractmethod
    async def list_releases(self) -> list[Release]:
        """Return all records of all releases, ordered by name then version."""


class ReleaseStorage(ReleaseReader):
    """Abstract base class for a writable release history."""

    max_history: int = MAX_HISTORY

    @abstractmethod
    async def append(self, release: Release) -> None:
        """Record a new version of a release.

        When the new record is deployed, any other deployed record of the
        release is marked superseded. Records beyond `max_history` are pruned
        oldest first. Both happen atomically with recording the new version.

        Raises:
            ReleaseExistsError: If the version is already recorded.
        """

    @abstractmethod
    async def update(self, release: Release) -> None:
        """Replace the status of an existing version of a release."""

    @abstractmethod
    async def purge(self, name: str) -> None:
        """Remove all records of a release."""
