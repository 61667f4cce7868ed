"""WordCard live update fanout."""

from wordcard.live.hub import (
    FanoutHub,
    LiveEvent,
    LiveEventType,
    Subscription,
    format_sse,
    store_change_to_events,
)

__all__ = [
    "FanoutHub",
    "LiveEvent",
    "LiveEventType",
    "Subscription",
    "format_sse",
    "store_change_to_events",
]
