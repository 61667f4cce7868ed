"""
WordCard Live Update Hub

Fans store changes out to every connected observer (a local UI, remote
browsers over SSE). Events are fire-and-forget notifications: there is
no history and no replay, a reconnecting observer re-fetches full state.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

import structlog

from wordcard.cards.store import ChangeKind, StoreChange

logger = structlog.get_logger(__name__)


class LiveEventType(str, Enum):
    """SSE event names understood by observers."""
    CONNECTED = "connected"
    CARDS_UPDATED = "cards-updated"
    CARD_CREATED = "card-created"
    CARD_ARCHIVED = "card-archived"
    PING = "ping"


@dataclass(frozen=True)
class LiveEvent:
    type: LiveEventType
    data: str

    @classmethod
    def connected(cls) -> LiveEvent:
        return cls(LiveEventType.CONNECTED, "ok")

    @classmethod
    def cards_updated(cls) -> LiveEvent:
        return cls(LiveEventType.CARDS_UPDATED, "refresh")

    @classmethod
    def card_created(cls, card_id: str) -> LiveEvent:
        return cls(LiveEventType.CARD_CREATED, card_id)

    @classmethod
    def card_archived(cls, card_id: str) -> LiveEvent:
        return cls(LiveEventType.CARD_ARCHIVED, card_id)

    @classmethod
    def ping(cls) -> LiveEvent:
        return cls(LiveEventType.PING, "keepalive")


def format_sse(event: LiveEvent) -> str:
    """Render an event in Server-Sent Events framing."""
    return f"event: {event.type.value}\ndata: {event.data}\n\n"


def store_change_to_events(change: StoreChange) -> List[LiveEvent]:
    """Map a store notification onto the events observers receive."""
    if change.kind == ChangeKind.CREATED:
        return [LiveEvent.card_created(card_id) for card_id in change.card_ids]
    if change.kind == ChangeKind.ARCHIVED:
        return [LiveEvent.card_archived(card_id) for card_id in change.card_ids]
    return [LiveEvent.cards_updated()]


@dataclass
class Subscription:
    """One registered observer."""
    connection_id: str
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    created_at: datetime = field(default_factory=datetime.now)
    event_count: int = 0


class FanoutHub:
    """
    Registry of observer queues.

    Broadcasting never blocks and never waits on a slow observer: each
    queue is unbounded and receives events with put_nowait.
    """

    def __init__(self, keepalive_interval: float = 30.0) -> None:
        self._keepalive = keepalive_interval
        self._subscriptions: Dict[str, Subscription] = {}

    @property
    def connection_count(self) -> int:
        return len(self._subscriptions)

    def register(self, connection_id: Optional[str] = None) -> Subscription:
        connection_id = connection_id or str(uuid.uuid4())
        subscription = Subscription(connection_id=connection_id)
        self._subscriptions[connection_id] = subscription
        logger.debug("fanout_hub.registered", connection_id=connection_id)
        return subscription

    def unregister(self, connection_id: str) -> None:
        """Remove an observer. Unknown ids are ignored."""
        if self._subscriptions.pop(connection_id, None) is not None:
            logger.debug("fanout_hub.unregistered", connection_id=connection_id)

    def broadcast(self, event: LiveEvent) -> int:
        """Queue *event* for every observer; returns how many received it."""
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            subscription.queue.put_nowait(event)
            subscription.event_count += 1
            delivered += 1
        logger.debug("fanout_hub.broadcast", event_type=event.type.value, delivered=delivered)
        return delivered

    def on_store_change(self, change: StoreChange) -> None:
        """Store listener: broadcast the events for one commit."""
        for event in store_change_to_events(change):
            self.broadcast(event)

    async def stream(
        self,
        subscription: Subscription,
        keepalive: Optional[float] = None,
    ) -> AsyncIterator[LiveEvent]:
        """
        Yield ``connected``, then queued events, with a ``ping`` whenever
        the observer has been idle for *keepalive* seconds.
        """
        interval = keepalive if keepalive is not None else self._keepalive
        try:
            yield LiveEvent.connected()
            while True:
                try:
                    event = await asyncio.wait_for(subscription.queue.get(), timeout=interval)
                except asyncio.TimeoutError:
                    yield LiveEvent.ping()
                    continue
                yield event
        finally:
            self.unregister(subscription.connection_id)

    async def sse_stream(
        self,
        subscription: Subscription,
        keepalive: Optional[float] = None,
    ) -> AsyncIterator[str]:
        async for event in self.stream(subscription, keepalive):
            yield format_sse(event)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "connections": self.connection_count,
            "keepalive_interval": self._keepalive,
        }
