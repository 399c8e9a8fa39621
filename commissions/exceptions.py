"""
Engine error taxonomy.

Pure calculators only raise ValidationFailure. Mutating services raise
NotFoundError, InvalidTransition and ConcurrencyConflict so callers can
tell "report to the user" apart from "retry".
"""

from typing import Any, Optional


class CommissionError(Exception):
    """Base class for engine errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(CommissionError):
    """A sale, batch, rate or allocation does not exist."""


class ValidationFailure(CommissionError, ValueError):
    """Structurally invalid input, rejected before any computation."""


class InvalidTransition(CommissionError):
    """A payroll batch operation was requested from the wrong state."""

    def __init__(self, expected: str, actual: str, target: Optional[str] = None):
        if target:
            message = f"Batch must be {expected} to transition to {target}"
        else:
            message = f"Batch must be {expected}, it is {actual}"
        super().__init__(
            message,
            {"expected": expected, "actual": actual, "target": target},
        )
        self.expected = expected
        self.actual = actual
        self.target = target


class ConcurrencyConflict(CommissionError):
    """A concurrent writer got there first; the caller should retry."""
