# src/complaint_desk/core/reconciler.py

"""
Change-event reconciler.

Owns the local, newest-first cache of complaints and keeps it in agreement
with the authoritative store:

- INSERT: confirm with fetch_by_id; unknown id -> prepend + "new complaint" signal,
          known id -> replace in place (a replayed insert acts like an update)
- UPDATE: confirm with fetch_by_id; replace the entry with the same id (no-op if absent)
- DELETE: drop the entry if present (no-op otherwise)

Key invariants:
- the cache never holds two entries with the same id,
- content is only ever taken from a record actually returned by the store
  (never computed from the event payload),
- anything ambiguous (missing record, unparsable row, id mismatch) means "no mutation",
- fetches still in flight at stop() are discarded, never applied.

Known race (there is no per-record version token):
two UPDATE events for one id start two fetches; whichever resolves last wins,
even if it carries the older state. A later event or a full reload repairs it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from typing import Any

from .errors import RemoteReadError, SubscriptionError
from .models import ChangeEvent, ChangeKind, Complaint
from .ports import ComplaintStore, Notifier, Record

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "complaints"

NewComplaintListener = Callable[[Complaint], None]
ChangeListener = Callable[[], None]


def new_complaint_message(complaint: Complaint) -> tuple[str, str]:
    """(title, body) handed to the notifier when a new complaint shows up."""
    name = complaint.customer_name or "Unknown"
    number = complaint.customer_number or "-"
    body = f"Complaint submitted for customer: {name}\nPhone: {number}"
    if complaint.agent_name:
        body += f"\nBy: {complaint.agent_name}"
    return "New complaint", body


class ChangeEventReconciler:
    def __init__(
        self,
        store: ComplaintStore,
        *,
        channel: str = DEFAULT_CHANNEL,
        notifier: Notifier | None = None,
    ) -> None:
        self._store = store
        self._channel = channel
        self._notifier = notifier

        self._cache: list[Complaint] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._handle: Any = None

        # Bumped on every stop(); a fetch started under an older generation is discarded.
        self._generation = 0

        self.active = False
        self.live = False

        self._new_listeners: list[NewComplaintListener] = []
        self._change_listeners: list[ChangeListener] = []

    # ---- listeners ----

    def on_new_complaint(self, listener: NewComplaintListener) -> None:
        self._new_listeners.append(listener)

    def on_change(self, listener: ChangeListener) -> None:
        self._change_listeners.append(listener)

    # ---- read-only view ----

    def snapshot(self) -> tuple[Complaint, ...]:
        return tuple(self._cache)

    def get(self, complaint_id: str) -> Complaint | None:
        i = self._index_of(str(complaint_id))
        return self._cache[i] if i is not None else None

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, complaint_id: object) -> bool:
        return self._index_of(str(complaint_id)) is not None

    def __iter__(self) -> Iterator[Complaint]:
        return iter(tuple(self._cache))

    # ---- lifecycle ----

    async def start(self) -> None:
        """Subscribe to the change channel (once) and load the current collection."""
        if self.active:
            return
        self.active = True

        try:
            self._handle = await self._store.subscribe(
                self._channel,
                self.handle_event,
                on_error=self.channel_lost,
            )
            self.live = True
            logger.info("Subscribed to change channel %r", self._channel)
        except SubscriptionError as exc:
            self._handle = None
            self.live = False
            logger.warning("Change channel %r unavailable: %s", self._channel, exc)
            await self._notify("Connection problem", "Live updates are unavailable. Use reload to refresh.")

        try:
            await self.full_reload()
        except RemoteReadError as exc:
            logger.warning("Initial load failed: %s", exc)
            await self._notify("Connection problem", "Could not load complaints. Use reload to retry.")

    async def stop(self) -> None:
        """Tear down the subscription and discard every in-flight reconciliation."""
        if not self.active:
            return
        self.active = False
        self.live = False
        self._generation += 1

        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                await self._store.unsubscribe(handle)
            except SubscriptionError as exc:
                logger.warning("Unsubscribe failed: %s", exc)

        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Reconciler stopped (cache=%d)", len(self._cache))

    def channel_lost(self, exc: SubscriptionError) -> None:
        """Called by the store when an established channel drops."""
        if not self.live:
            return
        self.live = False
        logger.warning("Change channel %r dropped: %s", self._channel, exc)
        self._spawn(self._notify("Connection lost", "Live updates stopped. Showing last known data."))

    # ---- events ----

    def handle_event(self, event: ChangeEvent) -> None:
        """Channel callback: schedule reconciliation and return immediately."""
        if not self.active:
            logger.debug("Ignoring %s %s: reconciler inactive", event.kind, event.record_id)
            return
        self._spawn(self.apply_event(event))

    async def drain(self) -> None:
        """Wait until every scheduled reconciliation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def apply_event(self, event: ChangeEvent) -> None:
        record_id = str(event.record_id)

        if event.kind == ChangeKind.DELETE:
            self._remove(record_id)
            return

        generation = self._generation
        try:
            record = await self._store.fetch_by_id(record_id)
        except RemoteReadError as exc:
            logger.warning("Dropping %s %s: fetch failed: %s", event.kind, record_id, exc)
            return
        except Exception:
            logger.exception("Dropping %s %s: unexpected fetch error", event.kind, record_id)
            return

        if generation != self._generation:
            logger.debug("Discarding late fetch for %s %s", event.kind, record_id)
            return

        complaint = self._parse(record, expected_id=record_id)
        if complaint is None:
            logger.info("Dropping %s %s: record not available", event.kind, record_id)
            return

        if event.kind == ChangeKind.INSERT:
            if self._replace(complaint):
                logger.debug("Re-insert of known complaint %s treated as update", record_id)
                return
            self._cache.insert(0, complaint)
            logger.info("New complaint %s (cache=%d)", record_id, len(self._cache))
            self._changed()
            await self._emit_new(complaint)
            return

        if event.kind == ChangeKind.UPDATE:
            if not self._replace(complaint):
                logger.debug("Update for uncached complaint %s ignored", record_id)

    async def full_reload(self) -> tuple[Complaint, ...]:
        """
        Replace the cache wholesale from a fresh collection fetch.

        Used after local writes as a stronger consistency fallback.
        On failure the cache is left untouched and RemoteReadError propagates.
        """
        generation = self._generation
        records = await self._store.fetch_all()
        if generation != self._generation:
            logger.debug("Discarding late full reload")
            return self.snapshot()

        fresh: list[Complaint] = []
        seen: set[str] = set()
        for record in records:
            complaint = self._parse(record)
            if complaint is None or complaint.id in seen:
                continue
            seen.add(complaint.id)
            fresh.append(complaint)

        fresh.sort(key=lambda c: c.created_at, reverse=True)
        self._cache = fresh
        logger.info("Full reload: %d complaints", len(fresh))
        self._changed()
        return self.snapshot()

    # ---- helpers ----

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _index_of(self, complaint_id: str) -> int | None:
        for i, c in enumerate(self._cache):
            if c.id == complaint_id:
                return i
        return None

    def _replace(self, complaint: Complaint) -> bool:
        i = self._index_of(complaint.id)
        if i is None:
            return False
        self._cache[i] = complaint
        self._changed()
        return True

    def _remove(self, complaint_id: str) -> None:
        i = self._index_of(complaint_id)
        if i is None:
            logger.debug("Delete for uncached complaint %s ignored", complaint_id)
            return
        del self._cache[i]
        logger.info("Complaint %s removed (cache=%d)", complaint_id, len(self._cache))
        self._changed()

    @staticmethod
    def _parse(record: Record | None, *, expected_id: str | None = None) -> Complaint | None:
        if record is None:
            return None
        try:
            complaint = Complaint.from_record(record)
        except (KeyError, TypeError, ValueError):
            logger.warning("Unparsable complaint record id=%r", record.get("id"), exc_info=True)
            return None
        if expected_id is not None and complaint.id != expected_id:
            logger.warning("Fetched id %r does not match event id %r", complaint.id, expected_id)
            return None
        return complaint

    def _changed(self) -> None:
        for listener in list(self._change_listeners):
            try:
                listener()
            except Exception:
                logger.exception("Change listener failed")

    async def _emit_new(self, complaint: Complaint) -> None:
        for listener in list(self._new_listeners):
            try:
                listener(complaint)
            except Exception:
                logger.exception("New-complaint listener failed")
        title, body = new_complaint_message(complaint)
        await self._notify(title, body)

    async def _notify(self, title: str, body: str) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.notify(title, body)
        except Exception:
            logger.exception("Notifier failed (title=%r)", title)
