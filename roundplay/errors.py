"""Exception hierarchy for conditions that are not ordinary game outcomes.

Expected outcomes (full session, wrong phase, number taken) are reported as
:class:`roundplay.results.ActionResult` values instead.
"""

from __future__ import annotations


class RoundplayError(Exception):
    """Base class for all errors raised by the package."""


class ValidationError(RoundplayError, ValueError):
    """Malformed request or configuration; never retried."""


class StoreUnavailableError(RoundplayError):
    """The durable store could not be reached; the caller may retry."""

    retryable = True


class InvariantViolation(RoundplayError, RuntimeError):
    """A programming or data invariant was broken; the operation is aborted."""


__all__ = [
    "InvariantViolation",
    "RoundplayError",
    "StoreUnavailableError",
    "ValidationError",
]
