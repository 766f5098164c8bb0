"""Application-level exception types.

Domain errors raised by the limiter, its storage adapters and the HTTP glue.
Each maps to one HTTP status in ``exception_handlers``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    rule: str
    bucket: str
    backend: str
    key_hash: str
    retry_after: int
    request_id: str
    context: NotRequired[dict[str, Any]]


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


class ValidationAppError(AppError):
    """Raised when a rate rule or its wire encoding is malformed."""


class MissingIdentityAppError(AppError):
    """Raised when no rate limit key can be derived and no fallback is allowed."""


class StorageAppError(AppError):
    """Raised when the per-key durable storage cannot be read or written."""
