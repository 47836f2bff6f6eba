"""Coordination layer - directory-backed lock queue."""

from .config import Settings
from .coordinator import LockCoordinator, LockState, TRANSITIONS
from .errors import (
    CoordinationError,
    DirectoryUnavailable,
    MarkerCreationFailed,
    RemovalFailed,
    SelfMarkerMissing,
    WatchChannelClosed,
    WatchSetupFailed,
)
from .markers import Contender, create_marker, release_marker
from .ordering import QueuePosition, list_queue, rank
from .watchers import (
    PollingRemovalWatcher,
    RemovalWatcher,
    WatchdogRemovalWatcher,
    WatchSubscription,
    build_watcher,
)

__all__ = [
    "Contender",
    "CoordinationError",
    "DirectoryUnavailable",
    "LockCoordinator",
    "LockState",
    "MarkerCreationFailed",
    "PollingRemovalWatcher",
    "QueuePosition",
    "RemovalFailed",
    "RemovalWatcher",
    "SelfMarkerMissing",
    "Settings",
    "TRANSITIONS",
    "WatchChannelClosed",
    "WatchSetupFailed",
    "WatchSubscription",
    "WatchdogRemovalWatcher",
    "build_watcher",
    "create_marker",
    "list_queue",
    "rank",
    "release_marker",
]
