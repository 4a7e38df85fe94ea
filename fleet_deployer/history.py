"""Infer the current state of a release from its stored history."""

import enum
import logging

from .exceptions import NoDeployedReleasesError, ReleaseNotFoundError
from .manifest import ReleaseStatus
from .storage import ReleaseReader

__all__ = [
    "ReleaseState",
    "ReleaseHistory",
]

_LOGGER = logging.getLogger(__name__)


class ReleaseState(enum.Enum):
    """The state of a release as far as deploying it is concerned."""

    ABSENT = "absent"
    """No deployed version, so the release must be installed."""

    DEPLOYED = "deployed"
    """A version is deployed, so the release can be upgraded."""

    UNINSTALLING = "uninstalling"
    """The last version is being uninstalled and that must finish first."""


class ReleaseHistory:
    """Answers questions about a release using its stored records.

    Only the absence of records is treated as an answer. Any other failure
    to read the history, such as the storage being unreachable, propagates
    so that no action is taken on a release whose state is unknown.
    """

    def __init__(self, releases: ReleaseReader) -> None:
        """Initialize ReleaseHistory."""
        self._releases = releases

    async def is_uninstalling(self, bundle_id: str) -> bool:
        """Return True if the most recent record is being uninstalled."""
        try:
            last = await self._releases.last(bundle_id)
        except ReleaseNotFoundError:
            return False
        return last.status == ReleaseStatus.UNINSTALLING

    async def needs_install(self, bundle_id: str) -> bool:
        """Return True if there is no deployed version to upgrade."""
        try:
            await self._releases.deployed(bundle_id)
        except NoDeployedReleasesError:
            return True
        return False

    async def state(self, bundle_id: str) -> ReleaseState:
        """Return the state of the release."""
        if await self.is_uninstalling(bundle_id):
            state = ReleaseState.UNINSTALLING
        elif await self.needs_install(bundle_id):
            state = ReleaseState.ABSENT
        else:
            state = ReleaseState.DEPLOYED
        _LOGGER.debug("Release %s is %s", bundle_id, state.value)
        return state
