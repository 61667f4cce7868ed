"""Shared fixtures for WordCard tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from wordcard.cards.codec import SnapshotCodec
from wordcard.cards.store import CardStore
from wordcard.cards.types import Card, CardCategory
from wordcard.core.clock import ManualClock

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    """A fixed timestamp *seconds* after T0."""
    return T0 + timedelta(seconds=seconds)


def make_card(card_id: str, text: str = "card", *, updated: float = 0, created: float = 0, **fields: Any) -> Card:
    return Card(
        id=card_id,
        text=text,
        created_at=at(created),
        updated_at=at(updated),
        category=fields.pop("category", CardCategory.IDEA),
        **fields,
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def codec(clock) -> SnapshotCodec:
    return SnapshotCodec(clock=clock)


@pytest.fixture
def store(clock, codec) -> CardStore:
    return CardStore(codec=codec, clock=clock)
