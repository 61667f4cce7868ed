"""
WordCard Change Sources

Each source produces a stream of "the shared file may have changed"
signals. A transport is usually watched by more than one source (a
timer-driven poll plus kernel file events or provider pushes) and
fan_in() merges them into one trigger stream. Whether a signal leads to
an import is decided by the sync service, never by the source.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence, Tuple

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from wordcard.core.errors import TransportUnavailable
from wordcard.sync.transport import FileStat, SharedFileTransport

logger = structlog.get_logger(__name__)


class SignalKind(str, Enum):
    """Where a change signal came from."""
    POLL = "poll"
    FILE_EVENT = "file_event"
    PROVIDER = "provider"


@dataclass
class ChangeSignal:
    """One trigger delivered to the sync service."""
    kind: SignalKind
    source: str
    observed_at: float = field(default_factory=time.time)
    detail: Optional[str] = None


class ChangeSource(ABC):
    """Interface shared by every change source."""

    name: str = "source"

    async def start(self) -> None:
        """Begin observing. Default: nothing to set up."""

    async def stop(self) -> None:
        """Stop observing and release any handles."""

    @abstractmethod
    async def next_change(self) -> ChangeSignal:
        """Wait for and return the next signal."""


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


_Observation = Tuple[bool, Optional[FileStat]]


class PollingChangeSource(ChangeSource):
    """
    Stats the shared file every *interval* seconds.

    Signals when the modification metadata differs from the previous
    observation, and when the location becomes reachable or unreachable.
    """

    name = "poll"

    def __init__(self, transport: SharedFileTransport, interval: float = 3.0) -> None:
        if interval <= 0:
            raise ValueError("Polling interval must be positive")
        self._transport = transport
        self._interval = interval
        self._last: Optional[_Observation] = None

    @property
    def interval(self) -> float:
        return self._interval

    def _observe_sync(self) -> _Observation:
        if not self._transport.is_available():
            return (False, None)
        try:
            return (True, self._transport.stat_sync())
        except TransportUnavailable:
            return (False, None)

    async def _observe(self) -> _Observation:
        # Both checks can block on a network mount
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._observe_sync)

    async def start(self) -> None:
        self._last = await self._observe()

    async def next_change(self) -> ChangeSignal:
        while True:
            await asyncio.sleep(self._interval)
            current = await self._observe()
            previous, self._last = self._last, current
            if current == previous:
                continue
            available, stat = current
            detail = "unavailable" if not available else ("missing" if stat is None else "modified")
            return ChangeSignal(kind=SignalKind.POLL, source=self.name, detail=detail)


# ---------------------------------------------------------------------------
# Queue-backed sources
# ---------------------------------------------------------------------------


class _QueuedChangeSource(ChangeSource):
    """Base for sources fed from callbacks rather than timers."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ChangeSignal] = asyncio.Queue()

    async def next_change(self) -> ChangeSignal:
        signal = await self._queue.get()
        # Collapse a burst of queued events into one signal
        while not self._queue.empty():
            signal = self._queue.get_nowait()
        return signal


class NotificationChangeSource(_QueuedChangeSource):
    """
    Signals pushed by a sync-provider integration.

    Cloud providers typically expose a metadata query or change feed;
    whatever glue consumes that feed calls notify() for each update.
    """

    name = "provider"

    def notify(self, detail: Optional[str] = None) -> None:
        self._queue.put_nowait(
            ChangeSignal(kind=SignalKind.PROVIDER, source=self.name, detail=detail)
        )


class _SharedFileEventHandler(FileSystemEventHandler):
    """Forwards watchdog events for one file name into the event loop."""

    def __init__(self, file_name: str, callback) -> None:
        self._file_name = file_name
        self._callback = callback

    def _matches(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        paths = [event.src_path, getattr(event, "dest_path", "") or ""]
        return any(Path(str(p)).name == self._file_name for p in paths if p)

    def on_created(self, event: FileSystemEvent) -> None:
        if self._matches(event):
            self._callback(event.event_type)

    def on_modified(self, event: FileSystemEvent) -> None:
        if self._matches(event):
            self._callback(event.event_type)

    def on_moved(self, event: FileSystemEvent) -> None:
        if self._matches(event):
            self._callback(event.event_type)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if self._matches(event):
            self._callback(event.event_type)


class FileEventChangeSource(_QueuedChangeSource):
    """
    Kernel-level file notifications through watchdog.

    The parent directory is watched rather than the file itself: atomic
    replacement swaps the inode, which would orphan a per-file watch.
    """

    name = "file_event"

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._observer: Optional[Observer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    async def start(self) -> None:
        if self._observer is not None:
            return
        directory = self._path.parent
        if not directory.is_dir():
            logger.warning("file_event_source.directory_missing", path=str(directory))
            return

        self._loop = asyncio.get_running_loop()
        handler = _SharedFileEventHandler(self._path.name, self._on_event)
        observer = Observer()
        observer.schedule(handler, str(directory), recursive=False)
        observer.start()
        self._observer = observer
        logger.info("file_event_source.started", path=str(self._path))

    async def stop(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, observer.join)
        logger.info("file_event_source.stopped", path=str(self._path))

    def _on_event(self, event_type: str) -> None:
        # Runs on the watchdog observer thread.
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        signal = ChangeSignal(kind=SignalKind.FILE_EVENT, source=self.name, detail=event_type)
        loop.call_soon_threadsafe(self._queue.put_nowait, signal)


# ---------------------------------------------------------------------------
# Fan-in
# ---------------------------------------------------------------------------


async def fan_in(sources: Sequence[ChangeSource]) -> AsyncIterator[ChangeSignal]:
    """Merge several sources into one signal stream."""
    queue: asyncio.Queue[ChangeSignal] = asyncio.Queue()

    async def pump(source: ChangeSource) -> None:
        while True:
            try:
                signal = await source.next_change()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("change_source.error", source=source.name, error=str(exc))
                await asyncio.sleep(1.0)
                continue
            await queue.put(signal)

    tasks: List[asyncio.Task[None]] = [asyncio.create_task(pump(s)) for s in sources]
    try:
        while True:
            yield await queue.get()
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
