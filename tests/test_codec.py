"""
WordCard Snapshot Codec Tests

Covers:
- Deterministic encoding and round-trips
- Decoder defaults for absent fields
- Tolerance of unknown fields and enum values
- Corrupt document detection
"""

from __future__ import annotations

import json

import pytest

from tests.conftest import T0, at, make_card
from wordcard.cards.codec import (
    SnapshotCodec,
    content_digest,
    format_timestamp,
    parse_timestamp,
)
from wordcard.cards.types import EPOCH, CardCategory, FontStyle
from wordcard.core.errors import CorruptSnapshot


def _document(cards, **extra):
    doc = {"version": 1, "exportDate": "2024-01-01T00:00:00Z", "appName": "WordCard", "cards": cards}
    doc.update(extra)
    return json.dumps(doc).encode("utf-8")


class TestTimestamps:
    def test_format_uses_z_suffix(self):
        assert format_timestamp(T0) == "2024-01-01T00:00:00Z"

    def test_subsecond_precision_kept(self):
        value = at(1.25)
        assert parse_timestamp(format_timestamp(value)) == value

    def test_parse_rejects_garbage(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp(12) is None


class TestEncode:
    def test_document_shape(self, codec):
        data = codec.encode([make_card("a", "Hello")], export_date=at(10))
        doc = json.loads(data)
        assert doc["version"] == 1
        assert doc["appName"] == "WordCard"
        assert doc["exportDate"] == "2024-01-01T00:00:10Z"
        assert doc["cards"][0]["id"] == "a"
        assert doc["cards"][0]["createdAt"] == "2024-01-01T00:00:00Z"

    def test_export_date_defaults_to_clock(self, codec, clock):
        clock.advance(42)
        doc = json.loads(codec.encode([]))
        assert doc["exportDate"] == "2024-01-01T00:00:42Z"

    def test_deterministic(self, codec):
        cards = [make_card("a", "Hello"), make_card("b", "World", updated=5)]
        assert codec.encode(cards, export_date=T0) == codec.encode(cards, export_date=T0)

    def test_card_order_preserved(self, codec):
        cards = [make_card("z"), make_card("a"), make_card("m")]
        doc = json.loads(codec.encode(cards, export_date=T0))
        assert [c["id"] for c in doc["cards"]] == ["z", "a", "m"]

    def test_non_ascii_text(self, codec):
        data = codec.encode([make_card("a", "Café ☕")], export_date=T0)
        assert "Café ☕".encode("utf-8") in data


class TestDecode:
    def test_round_trip(self, codec):
        cards = [
            make_card("a", "Hello", updated=3, notes="n"),
            make_card("b", "Bye", category=CardCategory.READINGS, font_style=FontStyle.BOOK),
            make_card("c", "Gone", is_archived=True, archived_at=at(7), updated=7),
        ]
        snapshot = codec.decode(codec.encode(cards, export_date=at(9)))
        assert snapshot.cards == cards
        assert snapshot.export_date == at(9)

    def test_missing_optional_fields_get_defaults(self, codec):
        snapshot = codec.decode(_document([{"id": "a", "text": "x", "createdAt": "2024-01-01T00:00:05Z"}]))
        card = snapshot.cards[0]
        assert card.notes == ""
        assert card.category == CardCategory.IDEA
        assert card.updated_at == at(5)
        assert card.is_archived is False
        assert card.archived_at is None
        assert card.corner_radius == 20
        assert card.dpi == 150

    def test_missing_created_at_falls_back_to_export_date(self, codec):
        snapshot = codec.decode(_document([{"id": "a", "text": "x"}], exportDate="2024-01-01T00:01:00Z"))
        assert snapshot.cards[0].created_at == at(60)
        assert snapshot.cards[0].updated_at == at(60)

    def test_unknown_fields_and_enum_values(self, codec):
        raw = {"id": "a", "text": "x", "fontStyle": "comic", "category": "poems", "future": True}
        card = codec.decode(_document([raw])).cards[0]
        assert card.font_style == FontStyle.ELEGANT
        assert card.category == CardCategory.IDEA

    def test_record_without_id_skipped(self, codec):
        snapshot = codec.decode(_document([{"text": "no id"}, {"id": "b", "text": "ok"}]))
        assert [c.id for c in snapshot.cards] == ["b"]

    def test_duplicate_ids_kept(self, codec):
        snapshot = codec.decode(_document([{"id": "a", "text": "1"}, {"id": "a", "text": "2"}]))
        assert len(snapshot.cards) == 2

    def test_missing_export_date_is_epoch(self, codec):
        data = json.dumps({"cards": []}).encode()
        snapshot = codec.decode(data)
        assert snapshot.export_date == EPOCH
        assert snapshot.version == 1

    def test_empty_card_list_is_valid(self, codec):
        snapshot = codec.decode(_document([]))
        assert snapshot.cards == []

    @pytest.mark.parametrize(
        "data",
        [b"not json", b"[1, 2]", b'{"cards": 3}', b'{"version": 1}', b"\xff\xfe"],
    )
    def test_corrupt_documents(self, codec, data):
        with pytest.raises(CorruptSnapshot):
            codec.decode(data, source="test")


class TestContentDigest:
    def test_identical_bytes_same_digest(self):
        assert content_digest(b"abc") == content_digest(b"abc")

    def test_different_bytes_different_digest(self):
        assert content_digest(b"abc") != content_digest(b"abd")

    def test_encoded_snapshot_digest_stable(self):
        codec = SnapshotCodec()
        cards = [make_card("a")]
        assert content_digest(codec.encode(cards, export_date=T0)) == content_digest(
            codec.encode(cards, export_date=T0)
        )
