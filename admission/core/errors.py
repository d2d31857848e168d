"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: float
    operation: str
    backend: str
    timeout_seconds: float
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
    """Raised when input/config validation fails."""


class StoreError(AppError):
    """Base for counter store failures; the failure policy applies to all of them."""


class StoreUnavailableError(StoreError):
    """Raised when the counter store cannot be reached or times out.

    A missing key is not an error: store adapters report it through the
    ``found`` flag of ``get`` instead.
    """


class StoreCommandError(StoreError):
    """Raised when the store answers but refuses a command.

    Covers replies such as WRONGTYPE or an overflowing INCR: the connection
    is healthy but the key cannot be used as a counter.
    """
