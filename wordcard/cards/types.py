"""
WordCard Card Types

Core data model for the replicated card collection:
- Card: the unit of replication
- Snapshot: the whole-collection document exchanged between replicas
- Enumerations for style, category, list ordering and archive filtering
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


SCHEMA_VERSION = 1
APP_NAME = "WordCard"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# Enumerations
# =============================================================================


class FontStyle(str, Enum):
    """Font family variants a card can be rendered with."""
    ELEGANT = "elegant"
    BOOK = "book"
    APPLE = "apple"

    @classmethod
    def parse(cls, value: Any) -> "FontStyle":
        try:
            return cls(value)
        except ValueError:
            return cls.ELEGANT


class CardCategory(str, Enum):
    """Card category tag."""
    IDEA = "idea"
    READINGS = "readings"
    MISCELLANEOUS = "miscellaneous"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def background_color(self) -> str:
        """Default background applied when a card is created."""
        return _CATEGORY_BACKGROUNDS[self]

    @classmethod
    def parse(cls, value: Any) -> "CardCategory":
        try:
            return cls(value)
        except ValueError:
            return cls.IDEA


_CATEGORY_BACKGROUNDS: Dict[CardCategory, str] = {
    CardCategory.IDEA: "#FFFFFF",
    CardCategory.READINGS: "#F5DEB3",
    CardCategory.MISCELLANEOUS: "#B0C4DE",
}


class ListOrder(str, Enum):
    """Ordering criterion for store listings."""
    CREATED = "created"
    UPDATED = "updated"
    ALPHABETICAL = "alphabetical"


class ArchiveFilter(str, Enum):
    """Which cards a listing includes."""
    ACTIVE = "active"
    ARCHIVED = "archived"
    ALL = "all"


# =============================================================================
# Card
# =============================================================================


@dataclass
class CardStyle:
    """Default style attributes for a freshly created card."""
    background_color: str = "#FFFFFF"
    text_color: str = "#000000"
    font_style: FontStyle = FontStyle.ELEGANT
    corner_radius: int = 20
    border_color: Optional[str] = "#CC785C"
    border_width: int = 1
    dpi: int = 150


DEFAULT_STYLE = CardStyle()


@dataclass
class Card:
    """
    A single word card.

    Style attributes are opaque to replication and carried verbatim.
    ``updated_at`` is the only input to conflict resolution; every local
    mutation advances it to the mutation's wall-clock time.
    """
    id: str
    text: str
    created_at: datetime
    updated_at: datetime
    background_color: str = DEFAULT_STYLE.background_color
    text_color: str = DEFAULT_STYLE.text_color
    font_style: FontStyle = DEFAULT_STYLE.font_style
    category: CardCategory = CardCategory.IDEA
    corner_radius: int = DEFAULT_STYLE.corner_radius
    border_color: Optional[str] = DEFAULT_STYLE.border_color
    border_width: int = DEFAULT_STYLE.border_width
    dpi: int = DEFAULT_STYLE.dpi
    is_archived: bool = False
    archived_at: Optional[datetime] = None
    notes: str = ""

    @classmethod
    def create(
        cls,
        text: str,
        category: CardCategory = CardCategory.IDEA,
        *,
        now: datetime,
        notes: str = "",
        **style: Any,
    ) -> "Card":
        """Build a new card with a fresh identity and category defaults."""
        attrs: Dict[str, Any] = {
            "background_color": category.background_color,
            "text_color": DEFAULT_STYLE.text_color,
            "font_style": DEFAULT_STYLE.font_style,
            "corner_radius": DEFAULT_STYLE.corner_radius,
            "border_color": DEFAULT_STYLE.border_color,
            "border_width": DEFAULT_STYLE.border_width,
            "dpi": DEFAULT_STYLE.dpi,
        }
        attrs.update(style)
        return cls(
            id=str(uuid.uuid4()),
            text=text,
            category=category,
            notes=notes,
            created_at=now,
            updated_at=now,
            **attrs,
        )

    def copy(self, **changes: Any) -> "Card":
        return replace(self, **changes)

    def content_fields(self) -> Dict[str, Any]:
        """Every field except identity and creation time."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in ("id", "created_at")
        }

    @property
    def normalized_text(self) -> str:
        return self.text.strip().casefold()


# Style attributes accepted by CardStore.create()
STYLE_FIELDS: FrozenSet[str] = frozenset(
    f.name for f in fields(CardStyle)
)

# Fields the caller may change through CardStore.update()
MUTABLE_FIELDS: FrozenSet[str] = frozenset(
    f.name for f in fields(Card)
    if f.name not in ("id", "created_at", "updated_at", "is_archived", "archived_at")
)


# =============================================================================
# Snapshot
# =============================================================================


@dataclass
class Snapshot:
    """Whole-collection document exchanged through the shared file."""
    export_date: datetime
    cards: List[Card] = field(default_factory=list)
    version: int = SCHEMA_VERSION
    app_name: str = APP_NAME

    @property
    def card_ids(self) -> FrozenSet[str]:
        return frozenset(card.id for card in self.cards)
