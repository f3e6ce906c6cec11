"""Application-level exception types.

This module defines domain errors used across services and the HTTP layer,
enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    limit: int
    remaining: int
    project_id: str
    messages_sent_today: int
    messages_left_today: int
    max_messages_per_day: int
    context: dict[str, Any]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

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


class AuthenticationAppError(AppError):
    """Raised when the caller cannot be authenticated."""


class StorageAppError(AppError):
    """Raised when a backing store cannot complete a write or read."""


@dataclass
class RateLimitAppError(AppError):
    """Raised when a request is denied by a rate limiter.

    Attributes:
        retry_after_ms: Milliseconds until a request may be admitted again.
        limit: Admission ceiling of the policy that denied the request.
    """

    retry_after_ms: int = 0
    limit: int | None = None
