"""
WordCard Kernel

Composition root for one replica. The kernel:
- Builds the canonical store, the live hub and the maintenance services
- Constructs one sync service per enabled transport
- Connects store changes to the hub
- Exposes status and maintenance entry points to the API and CLI
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from wordcard.cards.codec import SnapshotCodec
from wordcard.cards.dedupe import DedupeMode, DedupeResult, Deduplicator
from wordcard.cards.store import CardStore
from wordcard.core.clock import Clock, utc_now
from wordcard.core.config import WordCardConfig
from wordcard.live.hub import FanoutHub
from wordcard.sync.backup import BackupService, ImportMode, ImportResult
from wordcard.sync.merge import MergeEngine
from wordcard.sync.service import SyncService, SyncStatusReport
from wordcard.sync.sources import (
    ChangeSource,
    FileEventChangeSource,
    NotificationChangeSource,
    PollingChangeSource,
)
from wordcard.sync.transport import CloudDriveTransport, LanDirectoryTransport

logger = structlog.get_logger(__name__)


class KernelStatus(str, Enum):
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"
    SHUTDOWN = "shutdown"


@dataclass
class TriggerResult:
    """Outcome of an operator-requested sync check."""
    name: str
    imported: bool
    status: SyncStatusReport

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "imported": self.imported, "status": self.status.to_dict()}


class WordCardKernel:
    """
    Owns every component of a replica.

    Sync services are built from configuration during initialize();
    extra services can be attached with add_service() before that.
    """

    def __init__(
        self,
        config: Optional[WordCardConfig] = None,
        *,
        clock: Clock = utc_now,
        persist: bool = True,
    ) -> None:
        self.config = config or WordCardConfig()
        self.instance_id = self.config.instance_id
        self._clock = clock

        self.codec = SnapshotCodec(clock=clock)
        self.store = CardStore(
            self.config.store_path if persist else None,
            codec=self.codec,
            clock=clock,
        )
        self.hub = FanoutHub(keepalive_interval=self.config.live.keepalive_interval)
        self.merge_engine = MergeEngine()
        self.backup = BackupService(self.codec, clock=clock)
        self.deduplicator = Deduplicator(self.store)

        self._persist = persist
        self._services: Dict[str, SyncService] = {}
        self._notifications: Dict[str, NotificationChangeSource] = {}
        self._status = KernelStatus.INITIALIZING
        self._start_time: Optional[datetime] = None
        self._init_lock = asyncio.Lock()

    async def __aenter__(self) -> "WordCardKernel":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        async with self._init_lock:
            if self._status == KernelStatus.READY:
                return

            logger.info("kernel.initializing", instance_id=self.instance_id)
            self._start_time = self._clock()
            try:
                if self._persist:
                    self.config.ensure_directories()
                await self.store.load()
                self.store.add_listener(self.hub.on_store_change)

                self._build_services()
                for service in self._services.values():
                    await service.start()

                self._status = KernelStatus.READY
                logger.info(
                    "kernel.ready",
                    instance_id=self.instance_id,
                    services=list(self._services),
                )
            except Exception as exc:
                self._status = KernelStatus.ERROR
                logger.error("kernel.initialize_failed", error=str(exc))
                raise

    async def shutdown(self) -> None:
        logger.info("kernel.shutting_down", instance_id=self.instance_id)
        for service in self._services.values():
            await service.stop()
        self.store.remove_listener(self.hub.on_store_change)
        self._status = KernelStatus.SHUTDOWN
        logger.info("kernel.shutdown_complete")

    def _build_services(self) -> None:
        lan = self.config.lan
        if lan.enabled and "lan" not in self._services:
            transport = LanDirectoryTransport(lan.directory, lan.file_name)
            sources: List[ChangeSource] = [PollingChangeSource(transport, lan.poll_interval)]
            if lan.watch_file_events:
                sources.append(FileEventChangeSource(transport.path))
            self.add_service(
                SyncService(
                    "lan",
                    transport,
                    self.store,
                    sources=sources,
                    merge_engine=self.merge_engine,
                    codec=self.codec,
                    debounce_seconds=lan.debounce,
                    self_echo_window_seconds=lan.self_echo_window,
                    retry_interval_seconds=lan.retry_interval,
                    clock=self._clock,
                )
            )

        cloud = self.config.cloud
        if cloud.enabled and "cloud" not in self._services:
            if cloud.container is None:
                logger.warning("kernel.cloud_container_missing")
                return
            transport = CloudDriveTransport(cloud.container, cloud.file_name, cloud.documents_dir)
            notifications = NotificationChangeSource()
            self._notifications["cloud"] = notifications
            sources = [PollingChangeSource(transport, cloud.poll_interval), notifications]
            if cloud.watch_file_events:
                sources.append(FileEventChangeSource(transport.path))
            self.add_service(
                SyncService(
                    "cloud",
                    transport,
                    self.store,
                    sources=sources,
                    merge_engine=self.merge_engine,
                    codec=self.codec,
                    debounce_seconds=cloud.debounce,
                    self_echo_window_seconds=cloud.self_echo_window,
                    retry_interval_seconds=cloud.retry_interval,
                    clock=self._clock,
                )
            )

    # ------------------------------------------------------------------
    # Sync services
    # ------------------------------------------------------------------

    def add_service(self, service: SyncService) -> None:
        if service.name in self._services:
            raise ValueError(f"Sync service already registered: {service.name}")
        self._services[service.name] = service
        service.add_status_listener(self._on_sync_status)

    def get_service(self, name: str) -> SyncService:
        try:
            return self._services[name]
        except KeyError:
            raise KeyError(f"Unknown sync service: {name}") from None

    @property
    def services(self) -> Dict[str, SyncService]:
        return dict(self._services)

    def notification_source(self, name: str) -> Optional[NotificationChangeSource]:
        """Hook for a sync-provider integration to push change notices."""
        return self._notifications.get(name)

    async def trigger_sync(self, name: str) -> TriggerResult:
        service = self.get_service(name)
        imported = await service.check_for_changes(force=True)
        return TriggerResult(name=name, imported=imported, status=service.status())

    def sync_status(self) -> List[SyncStatusReport]:
        return [service.status() for service in self._services.values()]

    def _on_sync_status(self, report: SyncStatusReport) -> None:
        logger.debug("kernel.sync_status", name=report.name, status=report.status.value)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def dedupe(self, mode: DedupeMode = DedupeMode.CONTENT) -> DedupeResult:
        return await self.deduplicator.run(mode)

    async def export_backup(self, directory: Optional[Path] = None) -> Path:
        return await self.backup.write_backup(self.store, directory or self.config.store.backup_dir)

    async def import_backup(
        self,
        path: Path,
        mode: ImportMode = ImportMode.SKIP_EXISTING,
    ) -> ImportResult:
        snapshot = await self.backup.read_backup(path)
        return await self.backup.import_snapshot(self.store, snapshot, mode)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_ready(self) -> bool:
        return self._status == KernelStatus.READY

    async def get_status(self) -> Dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "status": self._status.value,
            "uptime_seconds": (
                (self._clock() - self._start_time).total_seconds()
                if self._start_time
                else 0
            ),
            "cards": await self.store.stats(),
            "live": self.hub.get_stats(),
            "sync": {report.name: report.to_dict() for report in self.sync_status()},
        }
