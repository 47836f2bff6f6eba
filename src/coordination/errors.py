"""Coordination errors - every failure the lock queue can surface."""

from pathlib import Path


class CoordinationError(Exception):
    """Base class for lock queue failures."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class DirectoryUnavailable(CoordinationError):
    """Shared directory could not be created or listed."""


class MarkerCreationFailed(CoordinationError):
    """No uniquely named marker could be created."""


class SelfMarkerMissing(CoordinationError):
    """Contender's own marker is no longer in the directory."""


class WatchSetupFailed(CoordinationError):
    """Notification backend could not be initialized or registered."""


class WatchChannelClosed(CoordinationError):
    """Notification backend stopped before reporting the removal."""


class RemovalFailed(CoordinationError):
    """A preceding marker could not be removed while cutting in line."""

    def __init__(
        self,
        message: str,
        path: Path | None = None,
        removed: list[Path] | None = None,
    ):
        super().__init__(message, path)
        self.removed = removed or []
