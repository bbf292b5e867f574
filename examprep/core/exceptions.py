"""
Typed errors raised by the mastery engine.

Validation errors also derive from ``ValueError`` and lookup errors from
``LookupError`` so callers can catch them with the builtin families.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for every error raised by the engine."""


class InvalidPerformance(EngineError, ValueError):
    """A performance or accuracy value is not a number in [0, 1]."""


class InvalidAnswer(EngineError, ValueError):
    """An answer or answer key does not fit its question type."""


class InvalidItem(EngineError, ValueError):
    """A learning item carries inconsistent metadata."""


class InvalidRequest(EngineError, ValueError):
    """An operation argument (limit, window, count) is out of range."""


class ItemNotFound(EngineError, LookupError):
    """Referenced learning item does not exist."""

    def __init__(self, item_id: str):
        super().__init__(f"Unknown item: {item_id}")
        self.item_id = item_id


class SetNotFound(EngineError, LookupError):
    """Referenced item set does not exist."""

    def __init__(self, set_id: str):
        super().__init__(f"Unknown item set: {set_id}")
        self.set_id = set_id


class AttemptNotFound(EngineError, LookupError):
    """Referenced attempt does not exist."""

    def __init__(self, attempt_id: str):
        super().__init__(f"Unknown attempt: {attempt_id}")
        self.attempt_id = attempt_id


class AttemptClosed(EngineError):
    """The attempt is no longer accepting answers."""

    def __init__(self, attempt_id: str, status: str):
        super().__init__(f"Attempt {attempt_id} is {status}")
        self.attempt_id = attempt_id
        self.status = status


class BatchRejected(EngineError):
    """One member of a batch failed validation; nothing was committed."""

    def __init__(self, index: int, cause: EngineError):
        super().__init__(f"Batch member {index} rejected: {cause}")
        self.index = index
        self.cause = cause


class StoreError(EngineError):
    """Persistence failure surfaced by a store."""


class ConcurrencyConflict(StoreError):
    """A versioned write found newer state than the caller read."""

    def __init__(self, key: str, expected: int, actual: int | None):
        super().__init__(f"Version conflict on {key}: expected {expected}, found {actual}")
        self.key = key
        self.expected = expected
        self.actual = actual
