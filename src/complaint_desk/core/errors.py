# src/complaint_desk/core/errors.py

from __future__ import annotations

"""
Domain error taxonomy.

Local errors (ValidationError, IllegalTransitionError) are raised before any
remote call is made. Remote errors wrap transport failures from a store
adapter so callers never have to know whether SQLite or HTTP sits behind it.
"""

from typing import Any


class ComplaintDeskError(Exception):
    """Base class for every error raised by the complaint core."""

    def __init__(self, message: str, *, complaint_id: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.complaint_id = complaint_id

    def __str__(self) -> str:
        if self.complaint_id is None:
            return self.message
        return f"{self.message} (complaint_id={self.complaint_id})"


class ValidationError(ComplaintDeskError):
    """Missing or blank input detected locally; no remote call was issued."""


class IllegalTransitionError(ComplaintDeskError):
    """The requested status change is not an edge of the lifecycle graph."""

    def __init__(
        self,
        message: str,
        *,
        complaint_id: Any = None,
        current: str | None = None,
        target: str | None = None,
    ) -> None:
        super().__init__(message, complaint_id=complaint_id)
        self.current = current
        self.target = target


class RemoteWriteError(ComplaintDeskError):
    """The store rejected an insert/update. Never retried automatically."""


class RemoteReadError(ComplaintDeskError):
    """A fetch against the store failed or returned an unusable record."""


class SubscriptionError(ComplaintDeskError):
    """The change channel could not be established or was dropped."""
