"""
WordCard Deduplication Engine

Operator-invoked maintenance passes that remove redundant cards. Both
passes keep the most recently updated record of each group:

- identity: records sharing an id
- content: records whose trimmed, case-folded text collapses to the same
  key; cards with an empty key are always removed

These passes are never part of the automatic merge loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Tuple

import structlog

from wordcard.cards.store import CardStore, ChangeOrigin, StoreBatch
from wordcard.cards.types import Card

logger = structlog.get_logger(__name__)


class DedupeMode(str, Enum):
    """Which grouping key a dedupe pass uses."""
    IDENTITY = "identity"
    CONTENT = "content"


@dataclass
class DedupeResult:
    """Summary returned to the operator."""
    total_cards: int
    duplicates_removed: int
    unique_cards: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_cards": self.total_cards,
            "duplicates_removed": self.duplicates_removed,
            "unique_cards": self.unique_cards,
        }


@dataclass
class DedupeOutcome:
    survivors: List[Card] = field(default_factory=list)
    removed: List[Card] = field(default_factory=list)

    @property
    def result(self) -> DedupeResult:
        return DedupeResult(
            total_cards=len(self.survivors) + len(self.removed),
            duplicates_removed=len(self.removed),
            unique_cards=len(self.survivors),
        )


def _keep_most_recent(
    cards: List[Card],
    key: Callable[[Card], str],
    *,
    drop_empty_key: bool = False,
) -> DedupeOutcome:
    # Stable sort: among equal timestamps the earlier record survives.
    ranked = sorted(enumerate(cards), key=lambda item: item[1].updated_at, reverse=True)

    kept: Dict[str, Tuple[int, Card]] = {}
    removed: List[Tuple[int, Card]] = []
    for position, card in ranked:
        group = key(card)
        if drop_empty_key and not group:
            removed.append((position, card))
        elif group in kept:
            removed.append((position, card))
        else:
            kept[group] = (position, card)

    # Survivors keep their original relative order.
    survivors = [card for _, card in sorted(kept.values(), key=lambda item: item[0])]
    return DedupeOutcome(
        survivors=survivors,
        removed=[card for _, card in sorted(removed, key=lambda item: item[0])],
    )


def dedupe_by_identity(cards: List[Card]) -> DedupeOutcome:
    """Keep the latest ``updated_at`` per id."""
    return _keep_most_recent(cards, key=lambda c: c.id)


def dedupe_by_content(cards: List[Card]) -> DedupeOutcome:
    """Keep the latest ``updated_at`` per normalized text; drop blank cards."""
    return _keep_most_recent(cards, key=lambda c: c.normalized_text, drop_empty_key=True)


_PASSES: Dict[DedupeMode, Callable[[List[Card]], DedupeOutcome]] = {
    DedupeMode.IDENTITY: dedupe_by_identity,
    DedupeMode.CONTENT: dedupe_by_content,
}


class Deduplicator:
    """Runs a dedupe pass against a store as one atomic step."""

    def __init__(self, store: CardStore) -> None:
        self._store = store

    async def run(self, mode: DedupeMode = DedupeMode.CONTENT) -> DedupeResult:
        dedupe = _PASSES[mode]

        def planner(cards: List[Card]) -> Tuple[StoreBatch, DedupeResult]:
            outcome = dedupe(cards)
            if not outcome.removed:
                return StoreBatch(), outcome.result
            batch = StoreBatch(
                replacement=outcome.survivors,
                origin=ChangeOrigin.MAINTENANCE,
            )
            return batch, outcome.result

        result: DedupeResult = await self._store.reconcile(planner)
        logger.info(
            "deduplicator.completed",
            mode=mode.value,
            **result.to_dict(),
        )
        return result
