"""Removal watchers - wait for one path to disappear.

A subscription reports exactly one terminal outcome for its target: the
target was removed (``wait()`` returns) or watching failed (``wait()``
raises). Whatever background thread or task a backend needs lives only as
long as the subscription, so ``close()`` must run on every exit path; use the
subscription as an async context manager where possible.
"""

import asyncio
import os
from abc import ABC, abstractmethod
from pathlib import Path

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import Settings
from .errors import CoordinationError, WatchChannelClosed, WatchSetupFailed

logger = structlog.get_logger()


class WatchSubscription(ABC):
    """One armed watch on one target path."""

    def __init__(self, target: Path, health_interval: float = 0.5):
        self.target = Path(target)
        self.health_interval = health_interval
        self._loop = asyncio.get_running_loop()
        self._future: asyncio.Future[None] = self._loop.create_future()
        self._closed = False

    @abstractmethod
    async def _arm(self) -> None:
        """Register with the notification backend."""
        ...

    @abstractmethod
    async def _disarm(self) -> None:
        """Tear down whatever ``_arm`` set up."""
        ...

    def _healthy(self) -> bool:
        return True

    async def start(self) -> "WatchSubscription":
        """Arm the watch, then catch a removal that happened before arming."""
        try:
            await self._arm()
        except BaseException:
            await self.close()
            raise

        if not os.path.lexists(self.target):
            self._deliver()

        logger.debug("Watching for removal", target=str(self.target))
        return self

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def delivered(self) -> bool:
        return self._future.done() and not self._future.cancelled()

    def _deliver(self, error: CoordinationError | None = None) -> None:
        # Only the first outcome counts.
        if self._future.done():
            return
        if error is None:
            self._future.set_result(None)
        else:
            self._future.set_exception(error)

    def _deliver_threadsafe(self, error: CoordinationError | None = None) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._deliver, error)

    async def wait(self) -> None:
        """Block until the target is removed; raise if watching fails first."""
        while True:
            done, _ = await asyncio.wait({self._future}, timeout=self.health_interval)
            if done:
                return self._future.result()
            if not os.path.lexists(self.target):
                self._deliver()
            elif not self._healthy():
                self._deliver(WatchChannelClosed(
                    f"Watch on {self.target} stopped before the target was removed",
                    self.target,
                ))

    async def close(self) -> None:
        """Release the watch. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        await self._disarm()

        if not self._future.done():
            self._future.cancel()
        elif not self._future.cancelled():
            # Mark an undelivered error as retrieved.
            self._future.exception()

        logger.debug("Closed removal watch", target=str(self.target))

    async def __aenter__(self) -> "WatchSubscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class _RemovalHandler(FileSystemEventHandler):
    """Forwards events about the target (or its directory) to a subscription."""

    def __init__(self, subscription: "WatchdogSubscription"):
        self.subscription = subscription

    def _matches(self, raw_path: bytes | str) -> Path | None:
        path = Path(os.fsdecode(raw_path))
        if path == self.subscription.target or path == self.subscription.target.parent:
            return path
        return None

    def on_deleted(self, event: FileSystemEvent) -> None:
        path = self._matches(event.src_path)
        if path is None:
            return
        if path == self.subscription.target:
            self.subscription._deliver_threadsafe()
        else:
            self.subscription._deliver_threadsafe(WatchChannelClosed(
                f"Watched directory {path} was removed", path
            ))

    def on_moved(self, event: FileSystemEvent) -> None:
        path = self._matches(event.src_path)
        if path is None:
            return
        if path == self.subscription.target:
            self.subscription._deliver_threadsafe()
        else:
            self.subscription._deliver_threadsafe(WatchChannelClosed(
                f"Watched directory {path} was moved", path
            ))


class WatchdogSubscription(WatchSubscription):
    """Native notifications through watchdog.

    Not every backend reports a file's own removal to a watch on that file,
    so the parent directory is watched and events are filtered by path.
    """

    def __init__(
        self,
        target: Path,
        health_interval: float = 0.5,
        join_timeout: float = 2.0,
    ):
        super().__init__(target, health_interval)
        self.join_timeout = join_timeout
        self._observer: Observer | None = None

    async def _arm(self) -> None:
        observer = Observer()
        try:
            observer.schedule(
                _RemovalHandler(self),
                str(self.target.parent),
                recursive=False,
            )
            observer.start()
        except OSError as exc:
            raise WatchSetupFailed(
                f"Cannot watch {self.target.parent}: {exc}", self.target
            ) from exc
        self._observer = observer

    async def _disarm(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        await asyncio.to_thread(self._observer.join, self.join_timeout)
        self._observer = None

    def _healthy(self) -> bool:
        return self._observer is not None and self._observer.is_alive()


class PollingSubscription(WatchSubscription):
    """Checks for the target on a fixed interval from an asyncio task."""

    def __init__(
        self,
        target: Path,
        health_interval: float = 0.5,
        interval: float = 0.05,
    ):
        super().__init__(target, health_interval)
        self.interval = interval
        self._task: asyncio.Task | None = None

    async def _arm(self) -> None:
        if not self.target.parent.is_dir():
            raise WatchSetupFailed(
                f"Cannot watch {self.target}: {self.target.parent} is not a directory",
                self.target,
            )
        self._task = asyncio.create_task(self._poll())

    async def _poll(self) -> None:
        while True:
            try:
                os.lstat(self.target)
            except FileNotFoundError:
                self._deliver()
                return
            except OSError as exc:
                self._deliver(WatchChannelClosed(
                    f"Cannot poll {self.target}: {exc}", self.target
                ))
                return
            await asyncio.sleep(self.interval)

    async def _disarm(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    def _healthy(self) -> bool:
        return self._task is not None and not self._task.done()


class RemovalWatcher(ABC):
    """Creates removal subscriptions for a notification backend."""

    @abstractmethod
    async def watch_removal(self, path: Path) -> WatchSubscription:
        """Arm a watch on ``path``; raises WatchSetupFailed if it cannot."""
        ...


class WatchdogRemovalWatcher(RemovalWatcher):
    """Removal watcher backed by OS file notifications."""

    def __init__(self, health_interval: float = 0.5, join_timeout: float = 2.0):
        self.health_interval = health_interval
        self.join_timeout = join_timeout

    async def watch_removal(self, path: Path) -> WatchSubscription:
        subscription = WatchdogSubscription(
            path,
            health_interval=self.health_interval,
            join_timeout=self.join_timeout,
        )
        return await subscription.start()


class PollingRemovalWatcher(RemovalWatcher):
    """Removal watcher for filesystems without usable notifications."""

    def __init__(self, interval: float = 0.05, health_interval: float = 0.5):
        self.interval = interval
        self.health_interval = health_interval

    async def watch_removal(self, path: Path) -> WatchSubscription:
        subscription = PollingSubscription(
            path,
            health_interval=self.health_interval,
            interval=self.interval,
        )
        return await subscription.start()


def build_watcher(settings: Settings) -> RemovalWatcher:
    """Removal watcher for the configured backend."""
    if settings.watch_backend == "polling":
        return PollingRemovalWatcher(
            interval=settings.poll_interval_seconds,
            health_interval=settings.watch_health_interval_seconds,
        )
    return WatchdogRemovalWatcher(
        health_interval=settings.watch_health_interval_seconds,
        join_timeout=settings.observer_join_timeout_seconds,
    )
