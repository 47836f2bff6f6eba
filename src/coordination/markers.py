"""Marker store - wait files that hold a contender's place in line.

Each contender creates one marker in the shared directory. Marker names are
``<prefix>-<timestamp>-<random>``: the timestamp is zero-padded nanoseconds so
plain string order follows creation order, and the random suffix keeps markers
created in the same instant apart.
"""

import os
import tempfile
import threading
import time
from pathlib import Path
from typing import BinaryIO

import structlog
from pydantic import BaseModel, ConfigDict

from .errors import DirectoryUnavailable, MarkerCreationFailed, RemovalFailed

logger = structlog.get_logger()

TIMESTAMP_WIDTH = 20

_clock_lock = threading.Lock()
_last_timestamp = 0


class Contender(BaseModel):
    """Identity of one lock contender: the shared directory and its own marker."""
    model_config = ConfigDict(frozen=True)

    directory: Path
    marker: Path

    @property
    def marker_name(self) -> str:
        return self.marker.name


def _next_timestamp() -> int:
    """Wall clock in nanoseconds, strictly increasing within this process."""
    global _last_timestamp
    with _clock_lock:
        _last_timestamp = max(_last_timestamp + 1, time.time_ns())
        return _last_timestamp


def marker_name(prefix: str = "queuer") -> str:
    """Name stem for a new marker; the random suffix is added on creation."""
    return f"{prefix}-{_next_timestamp():0{TIMESTAMP_WIDTH}d}-"


def ensure_directory(directory: Path, mode: int = 0o777) -> Path:
    """Create the shared directory if it does not exist yet."""
    try:
        directory.mkdir(mode=mode, parents=True, exist_ok=True)
    except OSError as exc:
        raise DirectoryUnavailable(
            f"Cannot create lock directory {directory}: {exc}", directory
        ) from exc
    return directory


def create_marker(
    directory: Path,
    *,
    prefix: str = "queuer",
    dir_mode: int = 0o777,
) -> tuple[BinaryIO, Contender]:
    """Create a uniquely named marker and return its open file and contender.

    The caller owns both: the file should be closed once it is no longer
    needed, and the marker removed with ``release_marker`` when done with the
    lock.
    """
    directory = ensure_directory(Path(directory).absolute(), dir_mode)

    try:
        fd, name = tempfile.mkstemp(prefix=marker_name(prefix), dir=directory)
    except FileExistsError as exc:
        raise MarkerCreationFailed(
            f"No unique marker name available in {directory}", directory
        ) from exc
    except OSError as exc:
        raise MarkerCreationFailed(
            f"Cannot create marker in {directory}: {exc}", directory
        ) from exc

    contender = Contender(directory=directory, marker=Path(name))
    logger.debug("Created marker", marker=contender.marker_name, directory=str(directory))

    return os.fdopen(fd, "wb"), contender


def release_marker(contender: Contender) -> bool:
    """Remove the contender's own marker. Returns False if it was already gone."""
    try:
        contender.marker.unlink()
    except FileNotFoundError:
        logger.debug("Marker already removed", marker=contender.marker_name)
        return False
    except OSError as exc:
        raise RemovalFailed(
            f"Cannot remove marker {contender.marker}: {exc}", contender.marker
        ) from exc

    logger.debug("Released marker", marker=contender.marker_name)
    return True
