"""
WordCard Backup Service

Manual, user-directed export and import of backup files. Unlike the
continuous merge, an import here follows an explicit policy chosen by
the user and ignores timestamps:

- SKIP_EXISTING: leave cards whose id already exists untouched
- UPDATE_EXISTING: overwrite existing cards unconditionally
- IMPORT_AS_NEW: give colliding cards fresh ids

Cards with unknown ids are inserted verbatim in every mode.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import structlog

from wordcard.cards.codec import SnapshotCodec
from wordcard.cards.store import CardStore, ChangeOrigin, StoreBatch
from wordcard.cards.types import Card, Snapshot
from wordcard.core.clock import Clock, utc_now
from wordcard.core.files import atomic_write
from wordcard.sync.merge import index_latest

logger = structlog.get_logger(__name__)


class ImportMode(str, Enum):
    """Policy for backup cards whose id already exists locally."""
    SKIP_EXISTING = "skip"
    UPDATE_EXISTING = "update"
    IMPORT_AS_NEW = "new"

    @property
    def description(self) -> str:
        return {
            ImportMode.SKIP_EXISTING: "Skip cards that already exist",
            ImportMode.UPDATE_EXISTING: "Update existing cards with backup data",
            ImportMode.IMPORT_AS_NEW: "Import duplicates as new cards",
        }[self]


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    updated: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"imported": self.imported, "skipped": self.skipped, "updated": self.updated}


class BackupService:
    """Reads and writes backup files and applies manual imports."""

    def __init__(
        self,
        codec: Optional[SnapshotCodec] = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._clock = clock
        self._codec = codec or SnapshotCodec(clock=clock)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def generate_filename(self) -> str:
        return f"WordCard_Backup_{self._clock().strftime('%Y-%m-%d_%H%M%S')}.json"

    async def export_snapshot(self, store: CardStore) -> bytes:
        cards = await store.all_cards()
        return self._codec.encode(cards)

    async def write_backup(self, store: CardStore, directory: Path) -> Path:
        """Write a timestamped backup file into *directory*."""
        data = await self.export_snapshot(store)
        target = Path(directory) / self.generate_filename()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, atomic_write, target, data)
        logger.info("backup_service.exported", path=str(target), bytes=len(data))
        return target

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def read_backup(self, path: Path) -> Snapshot:
        """
        Parse a backup file.

        Raises:
            CorruptSnapshot: if the file is not a snapshot document.
        """
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, Path(path).read_bytes)
        return self._codec.decode(data, source=str(path))

    def plan_import(
        self,
        snapshot: Snapshot,
        local: List[Card],
        mode: ImportMode,
    ) -> Tuple[StoreBatch, ImportResult]:
        existing = index_latest(local)
        result = ImportResult()
        upserts: List[Card] = []
        now = self._clock()

        for incoming in snapshot.cards:
            current = existing.get(incoming.id)
            if current is None:
                upserts.append(incoming.copy())
                existing[incoming.id] = incoming
                result.imported += 1
            elif mode == ImportMode.SKIP_EXISTING:
                result.skipped += 1
            elif mode == ImportMode.UPDATE_EXISTING:
                upserts.append(current.copy(**incoming.content_fields()).copy(updated_at=now))
                result.updated += 1
            else:
                upserts.append(incoming.copy(id=str(uuid.uuid4())))
                result.imported += 1

        return StoreBatch(upserts=upserts, origin=ChangeOrigin.IMPORT), result

    async def import_snapshot(
        self,
        store: CardStore,
        snapshot: Snapshot,
        mode: ImportMode = ImportMode.SKIP_EXISTING,
    ) -> ImportResult:
        """Apply a user-directed import under *mode*."""
        result: ImportResult = await store.reconcile(
            lambda cards: self.plan_import(snapshot, cards, mode)
        )
        logger.info("backup_service.imported", mode=mode.value, **result.to_dict())
        return result
