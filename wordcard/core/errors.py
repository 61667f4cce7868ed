"""
WordCard Error Taxonomy

Errors raised by the store, codec and sync transports. Transport and I/O
errors are caught at the sync service boundary and reported as status;
store identity errors propagate to the caller.
"""

from __future__ import annotations

from typing import Optional


class WordCardError(Exception):
    """Base class for all WordCard errors."""


class CorruptSnapshot(WordCardError):
    """The snapshot document could not be parsed at all."""

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.source = source


class TransportUnavailable(WordCardError):
    """The shared storage location is not reachable."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class WriteFailed(WordCardError):
    """A snapshot could not be persisted."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class CardNotFound(WordCardError, KeyError):
    """An operation referenced a card id the store does not hold."""

    def __init__(self, card_id: str) -> None:
        super().__init__(f"Card not found: {card_id}")
        self.card_id = card_id

    def __str__(self) -> str:
        return f"Card not found: {self.card_id}"


class ValidationError(WordCardError, ValueError):
    """Input rejected by the store before any mutation."""
