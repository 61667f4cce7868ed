"""
WordCard Canonical Store

Authoritative in-memory card collection for one replica. Every operation
runs under a single asyncio lock, so the store behaves as one logical
writer no matter how many tasks call into it; batches (merges, dedupe
passes, imports) commit as one atomic step.

When given a path, the store persists itself through the Snapshot Codec
after every commit using write-to-temp-then-rename.
"""

from __future__ import annotations

import asyncio
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import structlog

from wordcard.cards.codec import SnapshotCodec
from wordcard.cards.types import (
    MUTABLE_FIELDS,
    STYLE_FIELDS,
    ArchiveFilter,
    Card,
    CardCategory,
    ListOrder,
)
from wordcard.core.clock import Clock, utc_now
from wordcard.core.errors import CardNotFound, CorruptSnapshot, ValidationError, WriteFailed
from wordcard.core.files import atomic_write

logger = structlog.get_logger(__name__)


class ChangeKind(str, Enum):
    """What kind of mutation a StoreChange describes."""
    CREATED = "created"
    UPDATED = "updated"
    ARCHIVED = "archived"
    RESTORED = "restored"
    DELETED = "deleted"
    BATCH = "batch"
    LOADED = "loaded"


class ChangeOrigin(str, Enum):
    """Who caused a mutation."""
    LOCAL = "local"
    MERGE = "merge"
    IMPORT = "import"
    MAINTENANCE = "maintenance"


@dataclass
class StoreChange:
    """Notification delivered to store listeners after a commit."""
    kind: ChangeKind
    card_ids: List[str]
    origin: ChangeOrigin = ChangeOrigin.LOCAL
    source: Optional[str] = None


@dataclass
class StoreBatch:
    """
    A set of mutations applied atomically.

    Each upsert replaces every record sharing its id (or inserts it).
    ``replacement``, when set, swaps the whole collection instead.
    """
    upserts: List[Card] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)
    replacement: Optional[List[Card]] = None
    origin: ChangeOrigin = ChangeOrigin.LOCAL
    # Name of the component that produced the batch, echoed on the StoreChange
    source: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.upserts and not self.deletes and self.replacement is None


StoreListener = Callable[[StoreChange], None]


class CardStore:
    """
    Single-writer card collection.

    Records are kept as a list rather than keyed by id: replicas can end
    up holding several records with the same id after a faulty import,
    and the identity dedupe pass needs to see them.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        *,
        codec: Optional[SnapshotCodec] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._path = Path(path) if path else None
        self._clock = clock
        self._codec = codec or SnapshotCodec(clock=clock)
        self._cards: List[Card] = []
        self._lock = asyncio.Lock()
        self._listeners: List[StoreListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: StoreListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: StoreListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, change: StoreChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.warning(
                    "card_store.listener_error",
                    kind=change.kind.value,
                    exc_info=True,
                )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create(
        self,
        text: str,
        category: CardCategory = CardCategory.IDEA,
        *,
        notes: str = "",
        **style: Any,
    ) -> Card:
        """Create a card. Blank text is rejected."""
        if not text or not text.strip():
            raise ValidationError("Card text must not be blank")
        unknown = set(style) - STYLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown style fields: {sorted(unknown)}")

        async with self._lock:
            before = list(self._cards)
            card = Card.create(
                text.strip(),
                category,
                now=self._clock(),
                notes=notes,
                **style,
            )
            self._cards.append(card)
            await self._persist(before)

        logger.info("card_store.created", card_id=card.id, category=category.value)
        self._notify(StoreChange(ChangeKind.CREATED, [card.id]))
        return card.copy()

    async def update(self, card_id: str, **changes: Any) -> Card:
        """
        Apply the caller's intended field values and stamp ``updated_at``.

        Raises:
            CardNotFound: if no card has this id.
            ValidationError: for unknown or immutable fields.
        """
        invalid = set(changes) - MUTABLE_FIELDS
        if invalid:
            raise ValidationError(f"Fields cannot be updated: {sorted(invalid)}")

        async with self._lock:
            before = list(self._cards)
            updated = self._mutate(card_id, updated_at=self._clock(), **changes)
            await self._persist(before)

        self._notify(StoreChange(ChangeKind.UPDATED, [card_id]))
        return updated

    async def archive(self, card_id: str) -> Card:
        """Soft-delete a card; it stays replicated."""
        async with self._lock:
            before = list(self._cards)
            now = self._clock()
            archived = self._mutate(card_id, is_archived=True, archived_at=now, updated_at=now)
            await self._persist(before)

        logger.info("card_store.archived", card_id=card_id)
        self._notify(StoreChange(ChangeKind.ARCHIVED, [card_id]))
        return archived

    async def restore(self, card_id: str) -> Card:
        """Undo an archive."""
        async with self._lock:
            before = list(self._cards)
            restored = self._mutate(
                card_id, is_archived=False, archived_at=None, updated_at=self._clock()
            )
            await self._persist(before)

        self._notify(StoreChange(ChangeKind.RESTORED, [card_id]))
        return restored

    async def delete(self, card_id: str) -> None:
        """Hard-delete every record with this id."""
        async with self._lock:
            before = list(self._cards)
            self._cards = [c for c in self._cards if c.id != card_id]
            if len(self._cards) == len(before):
                raise CardNotFound(card_id)
            await self._persist(before)

        logger.info("card_store.deleted", card_id=card_id)
        self._notify(StoreChange(ChangeKind.DELETED, [card_id]))

    async def get(self, card_id: str) -> Card:
        async with self._lock:
            matches = [c for c in self._cards if c.id == card_id]
        if not matches:
            raise CardNotFound(card_id)
        return max(matches, key=lambda c: c.updated_at).copy()

    async def list(
        self,
        order: ListOrder = ListOrder.CREATED,
        archived: ArchiveFilter = ArchiveFilter.ACTIVE,
        query: Optional[str] = None,
    ) -> List[Card]:
        """List cards filtered by archive state and free-text query."""
        async with self._lock:
            cards = [c.copy() for c in self._cards]

        if archived == ArchiveFilter.ACTIVE:
            cards = [c for c in cards if not c.is_archived]
        elif archived == ArchiveFilter.ARCHIVED:
            cards = [c for c in cards if c.is_archived]

        if query:
            needle = query.casefold()
            cards = [
                c for c in cards
                if needle in c.text.casefold() or needle in c.notes.casefold()
            ]

        if order == ListOrder.CREATED:
            cards.sort(key=lambda c: c.created_at, reverse=True)
        elif order == ListOrder.UPDATED:
            cards.sort(key=lambda c: c.updated_at, reverse=True)
        else:
            cards.sort(key=lambda c: (c.text.casefold(), c.created_at))
        return cards

    async def all_cards(self) -> List[Card]:
        """Every record, duplicates included, in insertion order."""
        async with self._lock:
            return [c.copy() for c in self._cards]

    async def count(self) -> int:
        async with self._lock:
            return len(self._cards)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def commit(self, batch: StoreBatch) -> None:
        """Apply a batch atomically."""
        async with self._lock:
            before = list(self._cards)
            changed = self._apply(batch)
            if changed:
                await self._persist(before)
        if changed:
            self._notify(StoreChange(ChangeKind.BATCH, changed, batch.origin, batch.source))

    async def reconcile(
        self,
        planner: Callable[[List[Card]], Tuple[StoreBatch, Any]],
    ) -> Any:
        """
        Read, plan and commit as one atomic step.

        *planner* receives a copy of every record and returns the batch to
        apply plus an arbitrary result handed back to the caller.
        """
        async with self._lock:
            batch, result = planner([c.copy() for c in self._cards])
            before = list(self._cards)
            changed = self._apply(batch)
            if changed:
                await self._persist(before)
        if changed:
            self._notify(StoreChange(ChangeKind.BATCH, changed, batch.origin, batch.source))
        return result

    def _apply(self, batch: StoreBatch) -> List[str]:
        if batch.is_empty:
            return []

        if batch.replacement is not None:
            before = self._cards
            self._cards = [c.copy() for c in batch.replacement]
            if before == self._cards:
                return []
            return sorted({c.id for c in before} | {c.id for c in self._cards})

        changed: List[str] = []
        deleted: Set[str] = set(batch.deletes)
        if deleted:
            self._cards = [c for c in self._cards if c.id not in deleted]
            changed.extend(batch.deletes)

        for card in batch.upserts:
            positions = [i for i, c in enumerate(self._cards) if c.id == card.id]
            if positions:
                self._cards[positions[0]] = card.copy()
                for index in reversed(positions[1:]):
                    del self._cards[index]
            else:
                self._cards.append(card.copy())
            changed.append(card.id)
        return changed

    def _mutate(self, card_id: str, **changes: Any) -> Card:
        result: Optional[Card] = None
        for index, card in enumerate(self._cards):
            if card.id == card_id:
                self._cards[index] = card.copy(**changes)
                result = self._cards[index]
        if result is None:
            raise CardNotFound(card_id)
        return result.copy()

    # ------------------------------------------------------------------
    # Queries carried over from the app's widgets
    # ------------------------------------------------------------------

    async def random_card(self) -> Optional[Card]:
        """A random non-archived card, or None when there is none."""
        active = await self.list(archived=ArchiveFilter.ACTIVE)
        return random.choice(active) if active else None

    async def stats(self) -> Dict[str, Any]:
        async with self._lock:
            cards = list(self._cards)
        by_category = Counter(c.category.value for c in cards if not c.is_archived)
        archived = sum(1 for c in cards if c.is_archived)
        return {
            "total": len(cards),
            "active": len(cards) - archived,
            "archived": archived,
            "by_category": {cat.value: by_category.get(cat.value, 0) for cat in CardCategory},
        }

    async def daily_activity(
        self,
        days: int = 30,
        *,
        today: Optional[date] = None,
    ) -> List[Tuple[date, int]]:
        """Cards created per day over the *days* ending *today*."""
        async with self._lock:
            created = Counter(c.created_at.date() for c in self._cards)
        end = today or self._clock().date()
        start = end - timedelta(days=days - 1)
        return [
            (start + timedelta(days=offset), created.get(start + timedelta(days=offset), 0))
            for offset in range(days)
        ]

    # ------------------------------------------------------------------
    # Durability
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """
        Load the collection from the store file.

        A missing file leaves the store empty. A corrupt file is logged
        and the store starts empty rather than failing.
        """
        if self._path is None:
            return 0

        loop = asyncio.get_running_loop()
        path = self._path

        def _read() -> Optional[bytes]:
            if not path.exists():
                return None
            return path.read_bytes()

        data = await loop.run_in_executor(None, _read)
        if data is None:
            logger.info("card_store.load.no_file", path=str(path))
            return 0

        try:
            snapshot = self._codec.decode(data, source=str(path))
        except CorruptSnapshot as exc:
            logger.error("card_store.load.corrupt", path=str(path), error=str(exc))
            return 0

        async with self._lock:
            self._cards = list(snapshot.cards)
        logger.info("card_store.loaded", path=str(path), cards=len(snapshot.cards))
        self._notify(StoreChange(ChangeKind.LOADED, [c.id for c in snapshot.cards]))
        return len(snapshot.cards)

    async def _persist(self, before: List[Card]) -> None:
        """
        Write the collection to the store file.

        Called under the lock after a mutation. When the write fails the
        collection is reset to *before* and WriteFailed propagates, so
        memory never holds a change that is neither durable nor announced.
        """
        if self._path is None:
            return
        data = self._codec.encode(self._cards)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, atomic_write, self._path, data)
        except WriteFailed as exc:
            self._cards = before
            logger.error("card_store.persist_failed", path=str(self._path), error=str(exc))
            raise

