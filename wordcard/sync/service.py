"""
WordCard Replica Sync Service

One service per shared-file transport. It keeps the local store and the
shared snapshot converging:

- local mutations are debounced into one export
- change signals from the sources lead to a guarded import + merge
- writes this replica made itself are recognised and not re-imported
- import and export never overlap; a trigger arriving mid-operation is
  remembered and replayed once the operation finishes

Transport and I/O failures never escape the watch loop. They are turned
into a status and message, and the next signal or retry tick tries
again.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from wordcard.cards.codec import SnapshotCodec, content_digest, format_timestamp
from wordcard.cards.store import CardStore, ChangeKind, ChangeOrigin, StoreChange
from wordcard.core.clock import Clock, utc_now
from wordcard.core.errors import CorruptSnapshot, TransportUnavailable, WriteFailed
from wordcard.sync.merge import MergeEngine, MergeResult
from wordcard.sync.sources import ChangeSignal, ChangeSource, SignalKind, fan_in
from wordcard.sync.transport import FileStat, SharedFileTransport

logger = structlog.get_logger(__name__)


class SyncStatus(str, Enum):
    """Externally visible state of one replica's sync."""
    IDLE = "idle"
    CHECKING = "checking"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"
    UNAVAILABLE = "unavailable"
    STOPPED = "stopped"


@dataclass
class ReplicaState:
    """Process-local bookkeeping; never persisted."""
    last_seen_mtime: Optional[float] = None
    last_export_at: Optional[datetime] = None
    last_export_mtime: Optional[float] = None
    last_export_digest: Optional[str] = None
    last_import_digest: Optional[str] = None
    is_importing: bool = False
    is_exporting: bool = False
    pending_import: bool = False
    pending_export: bool = False
    export_failed: bool = False
    merges_applied: int = 0


@dataclass
class SyncStatusReport:
    name: str
    status: SyncStatus
    transport: str
    available: bool = False
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_merge: Optional[MergeResult] = None
    pending_import: bool = False
    pending_export: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "transport": self.transport,
            "available": self.available,
            "last_sync_at": format_timestamp(self.last_sync_at) if self.last_sync_at else None,
            "last_error": self.last_error,
            "last_merge": self.last_merge.to_dict() if self.last_merge else None,
            "pending_import": self.pending_import,
            "pending_export": self.pending_export,
        }


StatusListener = Callable[[SyncStatusReport], None]
Sleep = Callable[[float], Awaitable[None]]


class SyncService:
    """
    Replicates one CardStore through one shared file.

    Features:
    - Full sync (import then export) on start and on recovery
    - Debounced export of local changes
    - Self-echo suppression by content digest and export mtime
    - Import/export mutual exclusion with deferred replay
    - Export retry after write failures
    """

    def __init__(
        self,
        name: str,
        transport: SharedFileTransport,
        store: CardStore,
        *,
        sources: Sequence[ChangeSource] = (),
        merge_engine: Optional[MergeEngine] = None,
        codec: Optional[SnapshotCodec] = None,
        debounce_seconds: float = 0.5,
        self_echo_window_seconds: float = 3.0,
        retry_interval_seconds: float = 5.0,
        clock: Clock = utc_now,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._name = name
        self._transport = transport
        self._store = store
        self._sources: List[ChangeSource] = list(sources)
        self._merge_engine = merge_engine or MergeEngine()
        self._codec = codec or SnapshotCodec(clock=clock)
        self._debounce = debounce_seconds
        self._self_echo_window = timedelta(seconds=self_echo_window_seconds)
        self._retry_interval = retry_interval_seconds
        self._clock = clock
        self._sleep = sleep

        self._state = ReplicaState()
        self._status = SyncStatus.IDLE
        self._last_sync_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._last_merge: Optional[MergeResult] = None
        self._status_listeners: List[StatusListener] = []

        self._running = False
        self._watch_task: Optional[asyncio.Task[None]] = None
        self._debounce_task: Optional[asyncio.Task[None]] = None
        self._retry_task: Optional[asyncio.Task[None]] = None
        self._local_generation = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def transport(self) -> SharedFileTransport:
        return self._transport

    @property
    def state(self) -> ReplicaState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Check availability, run a full sync, then start watching."""
        if self._running:
            logger.warning("sync_service.already_running", name=self._name)
            return

        self._running = True
        self._store.add_listener(self._on_store_change)

        if await self._prepare_transport():
            await self.full_sync()

        for source in self._sources:
            await source.start()
        self._watch_task = asyncio.create_task(self._watch_loop())
        logger.info(
            "sync_service.started",
            name=self._name,
            transport=self._transport.describe(),
            sources=[s.name for s in self._sources],
        )

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        self._store.remove_listener(self._on_store_change)

        for task in (self._watch_task, self._debounce_task, self._retry_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._watch_task = None
        self._debounce_task = None
        self._retry_task = None

        for source in self._sources:
            await source.stop()

        self._set_status(SyncStatus.STOPPED)
        logger.info("sync_service.stopped", name=self._name)

    async def _prepare_transport(self) -> bool:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._transport.ensure_ready)
        except TransportUnavailable as exc:
            self._mark_unavailable(str(exc))
            return False
        return True

    # ------------------------------------------------------------------
    # Watch loop
    # ------------------------------------------------------------------

    async def _watch_loop(self) -> None:
        async for signal in fan_in(self._sources):
            try:
                await self.handle_signal(signal)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(
                    "sync_service.watch_error",
                    name=self._name,
                    source=signal.source,
                    error=str(exc),
                )
                self._set_status(SyncStatus.ERROR, str(exc))

    async def handle_signal(self, signal: ChangeSignal) -> None:
        """React to one change signal."""
        logger.debug(
            "sync_service.signal",
            name=self._name,
            kind=signal.kind.value,
            detail=signal.detail,
        )
        if self._status == SyncStatus.UNAVAILABLE:
            if await self._prepare_transport():
                logger.info("sync_service.transport_recovered", name=self._name)
                await self.full_sync()
            return

        loop = asyncio.get_running_loop()
        if not await loop.run_in_executor(None, self._transport.is_available):
            self._mark_unavailable(f"Shared location not reachable: {self._transport.describe()}")
            return

        if self._state.export_failed:
            await self.export_now()
        await self.check_for_changes(force=signal.kind != SignalKind.POLL)

    # ------------------------------------------------------------------
    # Sync operations
    # ------------------------------------------------------------------

    async def full_sync(self) -> Optional[MergeResult]:
        """Import then export."""
        self._set_status(SyncStatus.SYNCING)
        result = await self.import_now()
        if result is None or not result.has_changes:
            await self.export_now()
        return result

    async def check_for_changes(self, *, force: bool = False) -> bool:
        """
        Compare the shared file against what this replica last saw and
        import it when it really changed.

        ``force`` skips the mtime comparison; the content checks still
        apply. Returns True when an import ran.
        """
        state = self._state
        if state.is_importing or state.is_exporting:
            state.pending_import = True
            logger.debug("sync_service.check.deferred", name=self._name)
            return False

        previous = (self._status, self._last_error)
        self._set_status(SyncStatus.CHECKING)
        try:
            stat = await self._transport.stat()
        except TransportUnavailable as exc:
            self._mark_unavailable(str(exc))
            return False

        if stat is None or not self._has_changed(stat, force):
            self._restore_status(previous)
            return False

        state.last_seen_mtime = stat.mtime
        if self._is_self_echo(stat):
            logger.debug("sync_service.check.self_echo", name=self._name, mtime=stat.mtime)
            self._restore_status(previous)
            return False

        await self.import_now()
        return True

    async def import_now(self) -> Optional[MergeResult]:
        """
        Read, decode and merge the shared snapshot.

        Returns the merge result, or None when nothing was merged (file
        missing, unchanged, own write, deferred, or failed).
        """
        state = self._state
        if state.is_importing or state.is_exporting:
            state.pending_import = True
            logger.debug("sync_service.import.deferred", name=self._name)
            return None

        state.is_importing = True
        self._set_status(SyncStatus.SYNCING)
        result: Optional[MergeResult] = None
        try:
            data = await self._transport.read()
            if data is None:
                logger.info("sync_service.import.no_remote_file", name=self._name)
            else:
                digest = content_digest(data)
                if digest == state.last_export_digest:
                    logger.debug("sync_service.import.own_write", name=self._name)
                elif digest == state.last_import_digest:
                    logger.debug("sync_service.import.unchanged", name=self._name)
                else:
                    snapshot = self._codec.decode(data, source=self._transport.describe())
                    result = await self._merge_engine.merge(self._store, snapshot, source=self._name)
                    state.last_import_digest = digest
                    state.merges_applied += 1
                    self._last_merge = result
                    logger.info(
                        "sync_service.import.completed",
                        name=self._name,
                        remote_cards=len(snapshot.cards),
                        **result.to_dict(),
                    )
            self._mark_synced()
        except CorruptSnapshot as exc:
            logger.error(
                "sync_service.import.corrupt_snapshot",
                name=self._name,
                path=self._transport.describe(),
                error=str(exc),
            )
            self._set_status(SyncStatus.ERROR, str(exc))
        except TransportUnavailable as exc:
            self._mark_unavailable(str(exc))
        finally:
            state.is_importing = False

        if result is not None and result.has_changes:
            # Propagate merge results onward to replicas that only see this file.
            await self.export_now()
        await self._drain_pending()
        return result

    async def export_now(self) -> bool:
        """Write the whole store to the shared file. Returns True on success."""
        state = self._state
        if state.is_importing or state.is_exporting:
            state.pending_export = True
            logger.debug("sync_service.export.deferred", name=self._name)
            return False

        state.is_exporting = True
        succeeded = False
        try:
            cards = await self._store.all_cards()
            data = self._codec.encode(cards)
            # mtime of the file we wrote, not of whatever is at the path now
            written = await self._transport.write(data)

            state.last_export_at = self._clock()
            state.last_export_digest = content_digest(data)
            state.last_export_mtime = written.mtime if written else None
            state.export_failed = False
            self._mark_synced()
            succeeded = True
            logger.info(
                "sync_service.export.completed",
                name=self._name,
                cards=len(cards),
                bytes=len(data),
            )
        except WriteFailed as exc:
            state.export_failed = True
            logger.error("sync_service.export.failed", name=self._name, error=str(exc))
            self._set_status(SyncStatus.ERROR, str(exc))
            self._schedule_retry()
        except TransportUnavailable as exc:
            state.export_failed = True
            self._mark_unavailable(str(exc))
        finally:
            state.is_exporting = False

        await self._drain_pending()
        return succeeded

    async def _drain_pending(self) -> None:
        state = self._state
        if state.is_importing or state.is_exporting:
            return
        if state.pending_import:
            state.pending_import = False
            await self.check_for_changes(force=True)
        if state.pending_export and not (state.is_importing or state.is_exporting):
            state.pending_export = False
            await self.export_now()

    def _has_changed(self, stat: FileStat, force: bool) -> bool:
        if force or self._state.last_seen_mtime is None:
            return True
        return stat.mtime != self._state.last_seen_mtime

    def _is_self_echo(self, stat: FileStat) -> bool:
        state = self._state
        if state.last_export_at is None or state.last_export_mtime is None:
            return False
        if stat.mtime != state.last_export_mtime:
            return False
        return self._clock() - state.last_export_at <= self._self_echo_window

    # ------------------------------------------------------------------
    # Local changes
    # ------------------------------------------------------------------

    def _on_store_change(self, change: StoreChange) -> None:
        if change.kind == ChangeKind.LOADED:
            return
        # This service's own merge is re-exported by import_now.
        if change.origin == ChangeOrigin.MERGE and change.source == self._name:
            return
        self.notify_local_change()

    def notify_local_change(self) -> None:
        """
        Schedule an export; a burst of calls produces one export.

        The export runs once no further change has arrived for one
        debounce interval. If an import or export is in flight by then,
        export_now defers it until that operation finishes.
        """
        if not self._running:
            return
        self._local_generation += 1
        if self._debounce_task is None or self._debounce_task.done():
            self._debounce_task = asyncio.create_task(self._debounce_loop())

    async def _debounce_loop(self) -> None:
        while True:
            generation = self._local_generation
            await self._sleep(self._debounce)
            if generation != self._local_generation:
                continue

            await self.export_now()
            if generation == self._local_generation:
                return

    def _schedule_retry(self) -> None:
        if not self._running:
            return
        if self._retry_task is not None and not self._retry_task.done():
            return
        self._retry_task = asyncio.create_task(self._retry_loop())

    async def _retry_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self._running and self._state.export_failed:
            await self._sleep(self._retry_interval)
            if await loop.run_in_executor(None, self._transport.is_available):
                logger.info("sync_service.export.retry", name=self._name)
                await self.export_now()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def add_status_listener(self, listener: StatusListener) -> None:
        if listener not in self._status_listeners:
            self._status_listeners.append(listener)

    def status(self) -> SyncStatusReport:
        return SyncStatusReport(
            name=self._name,
            status=self._status,
            transport=self._transport.describe(),
            available=self._transport.is_available(),
            last_sync_at=self._last_sync_at,
            last_error=self._last_error,
            last_merge=self._last_merge,
            pending_import=self._state.pending_import,
            pending_export=self._state.pending_export,
        )

    def _mark_synced(self) -> None:
        self._last_sync_at = self._clock()
        self._set_status(SyncStatus.SYNCED)

    def _mark_unavailable(self, message: str) -> None:
        if self._status != SyncStatus.UNAVAILABLE:
            logger.warning("sync_service.unavailable", name=self._name, error=message)
        self._set_status(SyncStatus.UNAVAILABLE, message)

    def _restore_status(self, previous: Tuple[SyncStatus, Optional[str]]) -> None:
        if self._status == SyncStatus.CHECKING:
            self._set_status(*previous)

    def _set_status(self, status: SyncStatus, error: Optional[str] = None) -> None:
        changed = status != self._status or error != self._last_error
        self._status = status
        self._last_error = error
        if not changed:
            return
        report = self.status()
        for listener in list(self._status_listeners):
            try:
                listener(report)
            except Exception:
                logger.warning("sync_service.status_listener_error", name=self._name, exc_info=True)
