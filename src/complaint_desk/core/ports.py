# src/complaint_desk/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the store (SQLite, PostgREST) and notification transports
swappable and makes testing with in-memory fakes easy.
"""

from collections.abc import Callable
from typing import Any, Awaitable, Protocol

from .errors import SubscriptionError
from .models import ChangeEvent

Record = dict[str, Any]
# Store rows as plain dicts: {"id": ..., "status": ..., "created_at": "...", ...}.

ChangeHandler = Callable[[ChangeEvent], None]
ErrorHandler = Callable[[SubscriptionError], None]


class ComplaintStore(Protocol):
    """
    Authoritative remote store for complaints (and the complaint type catalogue).

    Adapters translate transport failures into RemoteWriteError / RemoteReadError /
    SubscriptionError. fetch_by_id returns None when the record does not exist.
    """

    def insert(self, record: Record) -> Awaitable[Record]: ...
    def update(self, record_id: str, patch: Record) -> Awaitable[Record]: ...
    def fetch_by_id(self, record_id: str) -> Awaitable[Record | None]: ...
    def fetch_all(self) -> Awaitable[list[Record]]: ...
    # Newest first (created_at descending).

    def subscribe(
        self,
        channel: str,
        handler: ChangeHandler,
        *,
        on_error: ErrorHandler | None = None,
    ) -> Awaitable[Any]: ...
    # on_error is called if an established channel drops later on.
    def unsubscribe(self, handle: Any) -> Awaitable[None]: ...

    # Complaint type catalogue
    def list_types(self) -> Awaitable[list[Record]]: ...
    def insert_type(self, record: Record) -> Awaitable[Record]: ...
    def update_type(self, type_id: str, patch: Record) -> Awaitable[Record]: ...
    def delete_type(self, type_id: str) -> Awaitable[None]: ...

    def close(self) -> Awaitable[None]: ...


class Notifier(Protocol):
    """
    Outbound notification service (console line, Matrix room message, ...).

    An explicit object with its own lifecycle, passed to whoever needs it.
    """

    def start(self) -> Awaitable[None]: ...
    def notify(self, title: str, body: str) -> Awaitable[None]: ...
    def close(self) -> Awaitable[None]: ...
