"""
WordCard Snapshot Codec

Serializes the whole card collection to one versioned JSON document and
back. Encoding is deterministic (sorted keys, fixed indentation) so that
identical inputs produce byte-identical output. Decoding tolerates absent
optional fields and ignores unknown ones, so older and newer producers
can share a file.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from wordcard.cards.types import (
    APP_NAME,
    DEFAULT_STYLE,
    EPOCH,
    SCHEMA_VERSION,
    Card,
    CardCategory,
    FontStyle,
    Snapshot,
)
from wordcard.core.clock import Clock, utc_now
from wordcard.core.errors import CorruptSnapshot

logger = structlog.get_logger(__name__)


# ------------------------------------------------------------------
# Timestamp helpers
# ------------------------------------------------------------------


def format_timestamp(value: datetime) -> str:
    """Render an ISO-8601 UTC timestamp with a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string; returns None for anything unusable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return default


def _as_str(value: Any, default: str) -> str:
    return value if isinstance(value, str) else default


# ------------------------------------------------------------------
# Card <-> dict
# ------------------------------------------------------------------


def card_to_dict(card: Card) -> Dict[str, Any]:
    """Wire representation of a card (camelCase keys)."""
    return {
        "id": card.id,
        "text": card.text,
        "backgroundColor": card.background_color,
        "textColor": card.text_color,
        "fontStyle": card.font_style.value,
        "category": card.category.value,
        "cornerRadius": card.corner_radius,
        "borderColor": card.border_color,
        "borderWidth": card.border_width,
        "dpi": card.dpi,
        "createdAt": format_timestamp(card.created_at),
        "updatedAt": format_timestamp(card.updated_at),
        "isArchived": card.is_archived,
        "archivedAt": format_timestamp(card.archived_at) if card.archived_at else None,
        "notes": card.notes,
    }


def card_from_dict(data: Dict[str, Any], *, export_date: datetime) -> Optional[Card]:
    """
    Build a card from its wire representation.

    Missing optional fields get their documented defaults. Returns None
    when the record has no usable identity.
    """
    card_id = data.get("id")
    if not isinstance(card_id, str) or not card_id:
        return None

    created_at = parse_timestamp(data.get("createdAt")) or export_date
    updated_at = parse_timestamp(data.get("updatedAt")) or created_at

    border_color = data.get("borderColor", DEFAULT_STYLE.border_color)
    if border_color is not None and not isinstance(border_color, str):
        border_color = DEFAULT_STYLE.border_color

    return Card(
        id=card_id,
        text=_as_str(data.get("text"), ""),
        background_color=_as_str(data.get("backgroundColor"), DEFAULT_STYLE.background_color),
        text_color=_as_str(data.get("textColor"), DEFAULT_STYLE.text_color),
        font_style=FontStyle.parse(data.get("fontStyle")),
        category=CardCategory.parse(data.get("category", CardCategory.IDEA.value)),
        corner_radius=_as_int(data.get("cornerRadius"), DEFAULT_STYLE.corner_radius),
        border_color=border_color,
        border_width=_as_int(data.get("borderWidth"), DEFAULT_STYLE.border_width),
        dpi=_as_int(data.get("dpi"), DEFAULT_STYLE.dpi),
        created_at=created_at,
        updated_at=updated_at,
        is_archived=bool(data.get("isArchived", False)),
        archived_at=parse_timestamp(data.get("archivedAt")),
        notes=_as_str(data.get("notes"), ""),
    )


# ------------------------------------------------------------------
# SnapshotCodec
# ------------------------------------------------------------------


class SnapshotCodec:
    """
    Encodes and decodes snapshot documents.

    The codec never holds card state; it works on the lists it is given.
    """

    def __init__(
        self,
        *,
        app_name: str = APP_NAME,
        version: int = SCHEMA_VERSION,
        clock: Clock = utc_now,
    ) -> None:
        self._app_name = app_name
        self._version = version
        self._clock = clock

    def encode(self, cards: List[Card], export_date: Optional[datetime] = None) -> bytes:
        """Serialize *cards* into a snapshot document stamped with *export_date* (default now)."""
        document = {
            "version": self._version,
            "exportDate": format_timestamp(export_date or self._clock()),
            "appName": self._app_name,
            "cards": [card_to_dict(card) for card in cards],
        }
        return json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False).encode("utf-8")

    def decode(self, data: bytes, *, source: Optional[str] = None) -> Snapshot:
        """
        Parse a snapshot document.

        Raises:
            CorruptSnapshot: only if the document is not parseable at all.
        """
        try:
            document = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CorruptSnapshot(f"Snapshot is not valid JSON: {exc}", source=source) from exc

        if not isinstance(document, dict) or not isinstance(document.get("cards"), list):
            raise CorruptSnapshot("Snapshot has no card list", source=source)

        export_date = parse_timestamp(document.get("exportDate")) or EPOCH
        cards: List[Card] = []
        skipped = 0
        for raw in document["cards"]:
            card = card_from_dict(raw, export_date=export_date) if isinstance(raw, dict) else None
            if card is None:
                skipped += 1
                continue
            cards.append(card)

        if skipped:
            logger.warning(
                "snapshot_codec.records_skipped",
                skipped=skipped,
                source=source,
            )

        return Snapshot(
            export_date=export_date,
            cards=cards,
            version=_as_int(document.get("version"), SCHEMA_VERSION),
            app_name=_as_str(document.get("appName"), self._app_name),
        )


def content_digest(data: bytes) -> str:
    """SHA-256 of raw snapshot bytes, used to recognise our own writes."""
    return hashlib.sha256(data).hexdigest()
