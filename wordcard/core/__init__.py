"""WordCard core: errors, clock, configuration and the kernel."""

from wordcard.core.clock import Clock, ManualClock, utc_now
from wordcard.core.errors import (
    CardNotFound,
    CorruptSnapshot,
    TransportUnavailable,
    ValidationError,
    WordCardError,
    WriteFailed,
)

__all__ = [
    "Clock",
    "ManualClock",
    "utc_now",
    "CardNotFound",
    "CorruptSnapshot",
    "TransportUnavailable",
    "ValidationError",
    "WordCardError",
    "WriteFailed",
]
