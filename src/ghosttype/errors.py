"""Exception hierarchy shared by the backend client and the completion engine.

None of these ever escape to the host editor: the completion provider and the
typing prefetcher translate every one of them into "no suggestion this time".
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "GhostTypeError",
    "BudgetExceededError",
    "BackendError",
    "BackendUnavailableError",
    "MalformedResponseError",
]


class GhostTypeError(RuntimeError):
    """Base class for every error raised by GhostType."""


class BudgetExceededError(GhostTypeError):
    """Raised by a non-blocking acquisition when no request slot is free."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"request concurrency budget exceeded (max={limit})")
        self.limit = limit


class BackendError(GhostTypeError):
    """Base class for failures talking to the language-model backend."""

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class BackendUnavailableError(BackendError):
    """The backend could not be reached or answered with an API error."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        base_url: str | None = None,
    ) -> None:
        if base_url:
            message = f"{message} URL={base_url}"
        super().__init__(message, operation=operation)
        self.base_url = base_url


class MalformedResponseError(BackendError):
    """The backend answered, but the payload failed decoding or schema validation."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        payload: Any | None = None,
    ) -> None:
        super().__init__(message, operation=operation)
        self.payload = payload
