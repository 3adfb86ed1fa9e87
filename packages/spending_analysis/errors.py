"""Exception types raised by ``spending_analysis``.

"No match" outcomes (message is not a transaction, no rule fits) are never
exceptions; they are ``None``/empty results. Only broken invariants and
unrecoverable batch I/O land here.
"""

from __future__ import annotations


class SpendingAnalysisError(Exception):
    """Base exception for the package."""


class CacheWriteError(SpendingAnalysisError):
    """A cache batch could not be written after all retry attempts."""

    def __init__(self, message: str, *, batch_size: int, attempts: int) -> None:
        super().__init__(message)
        self.batch_size = batch_size
        self.attempts = attempts


class RollupInvariantError(SpendingAnalysisError, AssertionError):
    """A roll-up summary disagrees with the sum of its leaves.

    Subclasses ``AssertionError`` so tests treat it as a hard failure; it is a
    programming error upstream, never something to round away.
    """


__all__ = ["SpendingAnalysisError", "CacheWriteError", "RollupInvariantError"]
