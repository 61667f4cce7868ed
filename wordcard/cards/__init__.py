"""
WordCard Cards

Modules:
- types: Card and Snapshot data model
- codec: JSON snapshot encoding and decoding
- store: Canonical single-writer store
- dedupe: Operator-invoked deduplication passes
"""

from __future__ import annotations

from wordcard.cards.codec import SnapshotCodec, content_digest
from wordcard.cards.dedupe import (
    DedupeMode,
    DedupeOutcome,
    DedupeResult,
    Deduplicator,
    dedupe_by_content,
    dedupe_by_identity,
)
from wordcard.cards.store import (
    CardStore,
    ChangeKind,
    ChangeOrigin,
    StoreBatch,
    StoreChange,
)
from wordcard.cards.types import (
    ArchiveFilter,
    Card,
    CardCategory,
    CardStyle,
    FontStyle,
    ListOrder,
    Snapshot,
)

__all__ = [
    # types
    "ArchiveFilter",
    "Card",
    "CardCategory",
    "CardStyle",
    "FontStyle",
    "ListOrder",
    "Snapshot",
    # codec
    "SnapshotCodec",
    "content_digest",
    # store
    "CardStore",
    "ChangeKind",
    "ChangeOrigin",
    "StoreBatch",
    "StoreChange",
    # dedupe
    "DedupeMode",
    "DedupeOutcome",
    "DedupeResult",
    "Deduplicator",
    "dedupe_by_content",
    "dedupe_by_identity",
]
