"""Application-level exception types.

This module defines the errors raised by the limiter, its counter stores and
its configuration helpers, so callers can tell a normal back-off signal apart
from a broken store.

Hierarchy:
- ValidationAppError: invalid arguments or configuration.
- StoreAppError: any failure while talking to the counter store.
- StoreConnectionAppError: the store target is malformed or unreachable.
- RateLimitExceededAppError: the identifier used up its window budget.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional; each error type fills the ones that apply.
    """

    code: str
    message: str
    hint: str
    limit: int
    count: int
    window_seconds: int
    retry_after: int
    error_type: str


@dataclass
class AppError(Exception):
    """Base error for limiter failures and outcomes.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class StoreAppError(AppError):
    """Raised when an operation against the counter store fails."""


class StoreConnectionAppError(StoreAppError):
    """Raised when the store target cannot be parsed or reached."""


class RateLimitExceededAppError(AppError):
    """Raised by ``check`` when the identifier exceeded its ceiling.

    This is an expected outcome rather than a system failure.
    """

    @property
    def retry_after(self) -> int | None:
        """Seconds until the current window resets, if known."""
        if not self.details:
            return None
        return self.details.get("retry_after")
