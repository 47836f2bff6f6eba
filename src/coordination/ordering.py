"""Queue ordering - rank contenders by the sorted directory listing."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import DirectoryUnavailable, SelfMarkerMissing
from .markers import Contender


@dataclass
class QueuePosition:
    """Where a contender stands in line."""
    directory: Path
    index: int
    names: list[str] = field(default_factory=list)

    @property
    def is_first(self) -> bool:
        return self.index == 0

    @property
    def predecessor(self) -> Path | None:
        """Marker directly ahead of this contender, if any."""
        if self.index == 0:
            return None
        return self.directory / self.names[self.index - 1]


def list_queue(directory: Path) -> list[str]:
    """All entries in the shared directory, in queue order."""
    try:
        return sorted(os.listdir(directory))
    except OSError as exc:
        raise DirectoryUnavailable(
            f"Cannot list lock directory {directory}: {exc}", Path(directory)
        ) from exc


def rank(contender: Contender) -> QueuePosition:
    """Compute the contender's zero-based position from a fresh listing."""
    names = list_queue(contender.directory)

    try:
        index = names.index(contender.marker_name)
    except ValueError:
        raise SelfMarkerMissing(
            f"Marker {contender.marker_name} is no longer in {contender.directory}",
            contender.marker,
        ) from None

    return QueuePosition(directory=contender.directory, index=index, names=names)
