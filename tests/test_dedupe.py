"""
WordCard Deduplication Tests
"""

from __future__ import annotations

import pytest

from tests.conftest import make_card
from wordcard.cards.dedupe import (
    DedupeMode,
    Deduplicator,
    dedupe_by_content,
    dedupe_by_identity,
)
from wordcard.cards.store import ChangeOrigin, StoreBatch


class TestDedupeByContent:
    def test_case_and_whitespace_collapse(self):
        cards = [
            make_card("1", "Hello", updated=1),
            make_card("2", "hello ", updated=3),
            make_card("3", "HELLO", updated=2),
        ]
        outcome = dedupe_by_content(cards)
        assert [c.id for c in outcome.survivors] == ["2"]
        assert sorted(c.id for c in outcome.removed) == ["1", "3"]
        assert outcome.result.to_dict() == {
            "total_cards": 3,
            "duplicates_removed": 2,
            "unique_cards": 1,
        }

    def test_blank_cards_removed(self):
        outcome = dedupe_by_content([make_card("1", "   "), make_card("2", "real")])
        assert [c.id for c in outcome.survivors] == ["2"]

    def test_survivor_order_preserved(self):
        cards = [make_card("a", "x"), make_card("b", "y"), make_card("c", "z")]
        assert [c.id for c in dedupe_by_content(cards).survivors] == ["a", "b", "c"]


class TestDedupeByIdentity:
    def test_latest_record_per_id(self):
        cards = [
            make_card("a", "old", updated=1),
            make_card("b", "other"),
            make_card("a", "new", updated=5),
        ]
        outcome = dedupe_by_identity(cards)
        assert [(c.id, c.text) for c in outcome.survivors] == [("b", "other"), ("a", "new")]
        assert outcome.result.duplicates_removed == 1

    def test_same_text_different_ids_kept(self):
        outcome = dedupe_by_identity([make_card("a", "same"), make_card("b", "same")])
        assert outcome.result.duplicates_removed == 0


class TestDeduplicator:
    @pytest.mark.asyncio
    async def test_run_content(self, store):
        await store.commit(
            StoreBatch(replacement=[make_card("1", "Hello", updated=1), make_card("2", "hello", updated=2)])
        )
        changes = []
        store.add_listener(changes.append)

        result = await Deduplicator(store).run(DedupeMode.CONTENT)

        assert result.duplicates_removed == 1
        assert [c.id for c in await store.all_cards()] == ["2"]
        assert changes[0].origin == ChangeOrigin.MAINTENANCE

    @pytest.mark.asyncio
    async def test_run_identity(self, store):
        await store.commit(
            StoreBatch(replacement=[make_card("a", "x", updated=1), make_card("a", "y", updated=2)])
        )
        result = await Deduplicator(store).run(DedupeMode.IDENTITY)
        assert result.unique_cards == 1
        assert [c.text for c in await store.all_cards()] == ["y"]

    @pytest.mark.asyncio
    async def test_nothing_to_remove_is_silent(self, store):
        await store.commit(StoreBatch(upserts=[make_card("a", "x")]))
        changes = []
        store.add_listener(changes.append)
        result = await Deduplicator(store).run()
        assert result.duplicates_removed == 0
        assert changes == []
