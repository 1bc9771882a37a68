"""
Exception taxonomy for the daily practice engine.

Validation and "already answered" conditions are reported to the caller for
display. Persistence failures are retried by the submission service and only
surface once retries are exhausted. Malformed records never leave the store:
it logs them and falls back to defaults.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Answer


class PracticeError(Exception):
    """Base class for all daily practice errors."""
    pass


class EmptyPoolError(PracticeError):
    """Raised when a question is requested from an empty pool."""
    pass


class AnswerValidationError(PracticeError):
    """Raised when submitted answer text is not acceptable."""
    pass


class EmptyAnswerError(AnswerValidationError):
    """Raised when the answer is empty after trimming whitespace."""
    pass


class AnswerTooShortError(AnswerValidationError):
    """Raised when the answer is shorter than the configured minimum."""

    def __init__(self, length: int, minimum: int):
        super().__init__(f"Answer must be at least {minimum} characters long (got {length})")
        self.length = length
        self.minimum = minimum


class AlreadyAnsweredError(PracticeError):
    """Raised when today's question already has an answer (reject policy)."""

    def __init__(self, day: str, existing: Answer | None = None):
        super().__init__(f"Today's question ({day}) has already been answered")
        self.day = day
        self.existing = existing


class PersistenceError(PracticeError):
    """Raised when the underlying record store fails to read or write."""
    pass


class MalformedRecordError(PracticeError):
    """Raised when a persisted record cannot be decoded."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"Malformed '{name}' record: {reason}")
        self.name = name
        self.reason = reason
