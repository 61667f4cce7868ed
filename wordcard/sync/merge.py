"""
WordCard Merge Engine

Reconciles a freshly read remote snapshot against the local store using
identity-keyed last-writer-wins:

1. A remote card newer than its local counterpart overwrites it entirely
   (archive state and ``updated_at`` included). Local wins ties.
2. A remote card unknown locally is inserted verbatim.
3. A local card missing from the snapshot is deleted only when the
   snapshot's ``export_date`` is later than the card's ``updated_at``;
   otherwise the absence is treated as a stale snapshot and the card
   survives.

Planning is pure; the store applies the resulting batch atomically.
Running the same snapshot twice yields the same state as running it once.

No clock-skew compensation is attempted: a replica whose clock runs far
ahead can resurrect remote deletions, one far behind can lose edits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import structlog

from wordcard.cards.store import CardStore, ChangeOrigin, StoreBatch
from wordcard.cards.types import Card, Snapshot

logger = structlog.get_logger(__name__)


@dataclass
class MergeResult:
    """Counts reported by one merge pass."""
    imported: int = 0
    updated: int = 0
    deleted: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.imported or self.updated or self.deleted)

    def to_dict(self) -> Dict[str, int]:
        return {"imported": self.imported, "updated": self.updated, "deleted": self.deleted}


@dataclass
class MergePlan:
    """Mutation instructions produced by the engine."""
    upserts: List[Card] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)
    result: MergeResult = field(default_factory=MergeResult)

    def to_batch(self, source: Optional[str] = None) -> StoreBatch:
        return StoreBatch(
            upserts=list(self.upserts),
            deletes=list(self.deletes),
            origin=ChangeOrigin.MERGE,
            source=source,
        )


def index_latest(cards: List[Card]) -> Dict[str, Card]:
    """Index cards by id, keeping the most recently updated record per id."""
    index: Dict[str, Card] = {}
    for card in cards:
        current = index.get(card.id)
        if current is None or card.updated_at > current.updated_at:
            index[card.id] = card
    return index


class MergeEngine:
    """Last-writer-wins merge of a remote snapshot into the local store."""

    def plan(self, remote: Snapshot, local: List[Card]) -> MergePlan:
        """Compute the mutations needed to fold *remote* into *local*."""
        local_by_id = index_latest(local)
        remote_by_id = index_latest(remote.cards)
        plan = MergePlan()

        for card_id, remote_card in remote_by_id.items():
            existing = local_by_id.get(card_id)
            if existing is None:
                plan.upserts.append(remote_card.copy())
                plan.result.imported += 1
            elif remote_card.updated_at > existing.updated_at:
                plan.upserts.append(remote_card.copy(id=existing.id))
                plan.result.updated += 1

        for card_id, existing in local_by_id.items():
            if card_id in remote_by_id:
                continue
            if remote.export_date > existing.updated_at:
                plan.deletes.append(card_id)
                plan.result.deleted += 1

        return plan

    async def merge(
        self,
        store: CardStore,
        remote: Snapshot,
        *,
        source: Optional[str] = None,
    ) -> MergeResult:
        """
        Plan and apply a merge as one atomic store operation.

        *source* names the caller; store listeners see it on the change.
        """

        def planner(cards: List[Card]) -> Tuple[StoreBatch, MergeResult]:
            plan = self.plan(remote, cards)
            return plan.to_batch(source), plan.result

        result: MergeResult = await store.reconcile(planner)
        if result.has_changes:
            logger.info("merge_engine.applied", **result.to_dict())
        else:
            logger.debug("merge_engine.no_changes", remote_cards=len(remote.cards))
        return result
