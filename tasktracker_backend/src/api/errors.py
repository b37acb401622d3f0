from __future__ import annotations

from typing import Any, Optional


class TaskTrackerError(Exception):
    """Base class for domain errors rendered by the API's exception handlers."""

    status_code = 500
    kind = "ServerError"

    def __init__(self, message: str, detail: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


# PUBLIC_INTERFACE
class ValidationError(TaskTrackerError):
    """Input rejected before any store write (e.g. empty title or comment text)."""

    status_code = 422
    kind = "ValidationError"


# PUBLIC_INTERFACE
class NotFoundError(TaskTrackerError):
    """A task or user identifier did not resolve."""

    status_code = 404
    kind = "NotFound"


# PUBLIC_INTERFACE
class StoreError(TaskTrackerError):
    """
    The persistence layer failed.

    When raised while recording audit entries the task write it follows has
    already been committed; the mutation is not rolled back.
    """

    status_code = 500
    kind = "StoreError"
