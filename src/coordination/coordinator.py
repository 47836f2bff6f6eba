"""Lock coordinator - waiting in line, and cutting it.

Each lock contender creates a wait file in the shared directory to get a
place in line. The contender whose wait file sorts first holds the lock; every
other contender watches only the wait file directly ahead of it, so a release
wakes at most one waiter.
"""

import asyncio
from enum import Enum
from pathlib import Path

import structlog

from .config import Settings
from .errors import RemovalFailed, SelfMarkerMissing
from .markers import Contender, create_marker, release_marker
from .ordering import QueuePosition, list_queue, rank
from .watchers import RemovalWatcher, WatchSubscription, build_watcher

logger = structlog.get_logger()


class LockState(str, Enum):
    """Contender lifecycle states."""
    REGISTERED = "registered"
    WAITING = "waiting"
    HOLDING = "holding"
    ABANDONED = "abandoned"


# Valid state transitions
TRANSITIONS: dict[LockState, list[LockState]] = {
    LockState.REGISTERED: [LockState.WAITING, LockState.HOLDING, LockState.ABANDONED],
    LockState.WAITING: [LockState.WAITING, LockState.HOLDING, LockState.ABANDONED],
    LockState.HOLDING: [],  # terminal until the caller releases its marker
    LockState.ABANDONED: [],  # terminal
}


def _transition(contender: Contender, old: LockState, new: LockState) -> LockState:
    valid_next = TRANSITIONS.get(old, [])
    if new not in valid_next:
        raise ValueError(
            f"Invalid transition: {old} -> {new}. "
            f"Valid: {valid_next}"
        )
    if new != old:
        logger.info(
            "Lock transition",
            marker=contender.marker_name,
            from_state=old,
            to_state=new,
        )
    return new


class LockCoordinator:
    """Mutual exclusion through a shared directory of wait files."""

    def __init__(
        self,
        settings: Settings | None = None,
        watcher: RemovalWatcher | None = None,
    ):
        self.settings = settings or Settings()
        self.watcher = watcher or build_watcher(self.settings)

    def register(self, directory: Path | None = None) -> Contender:
        """Create a wait file and return the new contender."""
        handle, contender = create_marker(
            directory or self.settings.lock_dir,
            prefix=self.settings.marker_prefix,
            dir_mode=self.settings.dir_mode,
        )
        handle.close()

        logger.info(
            "Registered contender",
            marker=contender.marker_name,
            directory=str(contender.directory),
        )
        return contender

    def position(self, contender: Contender) -> QueuePosition:
        """Current place in line, from a fresh directory listing."""
        return rank(contender)

    def release(self, contender: Contender) -> bool:
        """Remove the contender's own wait file once it is done with the lock."""
        released = release_marker(contender)
        if released:
            logger.info("Released lock position", marker=contender.marker_name)
        return released

    async def wait_in_line(
        self,
        contender: Contender,
        cancel: asyncio.Event | None = None,
    ) -> LockState:
        """Block until the contender is first in line or ``cancel`` is set.

        Returns HOLDING or ABANDONED. Cancelling never touches the directory,
        so an abandoned contender still has to release its own wait file.
        Raises SelfMarkerMissing if the contender's wait file was removed by
        someone cutting in line, and watch errors as they are reported.
        """
        state = LockState.REGISTERED

        while True:
            try:
                current = rank(contender)
            except SelfMarkerMissing:
                logger.warning("Wait file removed while in line", marker=contender.marker_name)
                raise

            if current.is_first:
                logger.info("First in line", marker=contender.marker_name)
                return _transition(contender, state, LockState.HOLDING)

            if cancel is not None and cancel.is_set():
                return _transition(contender, state, LockState.ABANDONED)

            state = _transition(contender, state, LockState.WAITING)
            predecessor = current.predecessor
            logger.info(
                "Waiting for predecessor to exit",
                marker=contender.marker_name,
                predecessor=predecessor.name,
                rank=current.index,
            )

            subscription = await self.watcher.watch_removal(predecessor)
            async with subscription:
                removed = await self._await_removal(subscription, cancel)

            if not removed:
                return _transition(contender, state, LockState.ABANDONED)

    async def _await_removal(
        self,
        subscription: WatchSubscription,
        cancel: asyncio.Event | None,
    ) -> bool:
        """True once the watched file is gone, False if cancelled first."""
        waiter = asyncio.ensure_future(subscription.wait())
        pending = {waiter}
        if cancel is not None:
            pending.add(asyncio.ensure_future(cancel.wait()))

        try:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if waiter not in done:
            return False

        exc = waiter.exception()
        if exc is not None:
            logger.warning(
                "Watch failed",
                target=str(subscription.target),
                error=str(exc),
            )
            raise exc
        return True

    def cut_in_line(self, contender: Contender) -> list[Path]:
        """Forcibly remove every wait file ahead of the contender.

        Contenders behind this one are left alone. A wait file that vanishes
        before it can be removed counts as removed. Returns the removed paths.
        """
        names = list_queue(contender.directory)
        if contender.marker_name not in names:
            raise SelfMarkerMissing(
                f"Marker {contender.marker_name} is no longer in {contender.directory}",
                contender.marker,
            )

        removed: list[Path] = []
        for name in names:
            if name == contender.marker_name:
                break
            path = contender.directory / name
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                raise RemovalFailed(
                    f"Cannot remove {path} while cutting in line: {exc}",
                    path,
                    removed=removed,
                ) from exc
            removed.append(path)

        logger.info(
            "Cut in line",
            marker=contender.marker_name,
            removed=len(removed),
        )
        return removed
