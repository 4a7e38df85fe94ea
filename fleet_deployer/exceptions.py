"""Exceptions related to fleet-deployer."""

__all__ = [
    "FleetException",
    "InputException",
    "CommandException",
    "KustomizeException",
    "HelmException",
    "RenderException",
    "PostRenderException",
    "StorageException",
    "HistoryUnavailableError",
    "ReleaseNotFoundError",
    "NoDeployedReleasesError",
    "ReleaseExistsError",
    "ValidationError",
    "ActionFailedError",
    "TimeoutExceededError",
]


class FleetException(Exception):
    """Generic base exception used for this library."""


class InputException(FleetException):
    """Raised when the input files or values are not formatted as expected."""


class CommandException(FleetException):
    """Raised when there is a failure running a subcommand."""


class KustomizeException(CommandException):
    """Raised when there is a failure running a kustomize command."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""


class RenderException(FleetException):
    """Raised when a bundle can't be packaged or loaded as a chart."""


class PostRenderException(FleetException):
    """Raised when rendered manifests can't be post-processed.

    The post renderer is all-or-nothing so when this is raised no
    modified manifests were produced.
    """


class StorageException(FleetException):
    """Base class for release storage failures."""


class HistoryUnavailableError(StorageException):
    """Raised when the release storage backend can't be queried.

    This is distinct from a release having no history at all, which is
    reported with `ReleaseNotFoundError`.
    """


class ReleaseNotFoundError(StorageException):
    """Raised when there are no stored records for a release."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name}: release: not found")
        self.name = name


class NoDeployedReleasesError(StorageException):
    """Raised when a release has history but no record with deployed status."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name}: has no deployed releases")
        self.name = name


class ReleaseExistsError(StorageException):
    """Raised when recording a release version that is already stored."""


class ValidationError(FleetException):
    """Raised when the dry-run phase of a deploy fails.

    The underlying failure is available as `__cause__`.
    """

    def __init__(self, bundle_id: str, message: str) -> None:
        super().__init__(f"Bundle {bundle_id} failed validation: {message}")
        self.bundle_id = bundle_id


class ActionFailedError(FleetException):
    """Raised when an install, upgrade or uninstall action fails."""


class TimeoutExceededError(FleetException):
    """Raised when waiting for resources exceeded the configured timeout."""
