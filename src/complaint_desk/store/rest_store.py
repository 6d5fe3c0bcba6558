# src/complaint_desk/store/rest_store.py

from __future__ import annotations

"""
PostgREST-compatible store adapter (e.g. a hosted Postgres behind a REST gateway).

Reads and writes are plain HTTP calls on one shared httpx.AsyncClient.

Change channel:
The REST surface has no push channel, so subscribe() runs a small polling
loop that snapshots the collection every poll_seconds, diffs it against the
previous snapshot by id and a content fingerprint, and emits
INSERT / UPDATE / DELETE events. Events only carry ids: the reconciler always
confirms with fetch_by_id before touching its cache.

If the loop loses the store it reports a SubscriptionError through on_error and
stops; there is no automatic resubscribe (a manual reload/restart recovers).
"""

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..core.errors import RemoteReadError, RemoteWriteError, SubscriptionError
from ..core.models import ChangeEvent, ChangeKind
from ..core.ports import ChangeHandler, ErrorHandler, Record

logger = logging.getLogger(__name__)

COMPLAINT_SELECT = (
    "*,"
    "type:complaint_types(name,fields),"
    "agent:users!agent_id(name),"
    "resolver:users!resolved_by(name)"
)


def _fingerprint(row: Record) -> str:
    raw = json.dumps(row, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def diff_snapshots(previous: dict[str, str], rows: list[Record]) -> tuple[dict[str, str], list[ChangeEvent]]:
    """
    Compare a new newest-first snapshot against {id: fingerprint}.

    Inserts are emitted oldest first so that prepending them keeps the
    consumer's cache newest-first.
    """
    current: dict[str, str] = {}
    order: list[str] = []
    for row in rows:
        rid = str(row.get("id"))
        if rid in current:
            continue
        current[rid] = _fingerprint(row)
        order.append(rid)

    events: list[ChangeEvent] = []
    for rid in previous:
        if rid not in current:
            events.append(ChangeEvent(kind=ChangeKind.DELETE, record_id=rid))
    for rid in reversed(order):
        if rid not in previous:
            events.append(ChangeEvent(kind=ChangeKind.INSERT, record_id=rid))
        elif previous[rid] != current[rid]:
            events.append(ChangeEvent(kind=ChangeKind.UPDATE, record_id=rid))
    return current, events


@dataclass(slots=True)
class _PollingSubscription:
    channel: str
    handler: ChangeHandler
    on_error: ErrorHandler | None
    snapshot: dict[str, str] = field(default_factory=dict)
    task: asyncio.Task[None] | None = None


class RestComplaintStore:
    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        poll_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not (base_url or "").strip():
            raise ValueError("base_url is required")

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers)
        self._poll_seconds = max(0.05, float(poll_seconds))
        self._subs: list[_PollingSubscription] = []

    async def close(self) -> None:
        for sub in list(self._subs):
            await self.unsubscribe(sub)
        await self._client.aclose()

    # ---- low-level helpers ----

    def _decode(self, resp: httpx.Response) -> Any:
        # A gateway can answer 200 with an HTML error page.
        try:
            return resp.json()
        except ValueError as exc:
            raise httpx.DecodingError(
                f"non-JSON response from {resp.request.url.path}: {exc}",
                request=resp.request,
            ) from exc

    async def _get(self, path: str, params: dict[str, str]) -> list[Record]:
        resp = await self._client.get(path, params=params)
        resp.raise_for_status()
        data = self._decode(resp)
        return data if isinstance(data, list) else []

    async def _write(self, method: str, path: str, *, params: dict[str, str] | None = None, body: Any = None) -> list[Record]:
        resp = await self._client.request(
            method,
            path,
            params=params,
            json=body,
            headers={"Prefer": "return=representation"},
        )
        resp.raise_for_status()
        if not resp.content:
            return []
        data = self._decode(resp)
        return data if isinstance(data, list) else [data]

    # ---- complaints ----

    async def fetch_by_id(self, record_id: str) -> Record | None:
        try:
            rows = await self._get(
                "/complaints",
                {"select": COMPLAINT_SELECT, "id": f"eq.{record_id}"},
            )
        except httpx.HTTPError as exc:
            raise RemoteReadError(f"fetch failed: {exc}", complaint_id=record_id) from exc
        return rows[0] if rows else None

    async def fetch_all(self) -> list[Record]:
        try:
            return await self._get(
                "/complaints",
                {"select": COMPLAINT_SELECT, "order": "created_at.desc"},
            )
        except httpx.HTTPError as exc:
            raise RemoteReadError(f"fetch_all failed: {exc}") from exc

    async def insert(self, record: Record) -> Record:
        try:
            rows = await self._write("POST", "/complaints", body=[record])
        except httpx.HTTPError as exc:
            raise RemoteWriteError(f"insert failed: {exc}") from exc
        if not rows:
            raise RemoteWriteError("insert returned no row")
        return await self._rejoin(rows[0])

    async def update(self, record_id: str, patch: Record) -> Record:
        try:
            rows = await self._write("PATCH", "/complaints", params={"id": f"eq.{record_id}"}, body=patch)
        except httpx.HTTPError as exc:
            raise RemoteWriteError(f"update failed: {exc}", complaint_id=record_id) from exc
        if not rows:
            raise RemoteWriteError("no such complaint", complaint_id=record_id)
        return await self._rejoin(rows[0])

    async def _rejoin(self, row: Record) -> Record:
        # Writes return the bare row; re-read it with the joined relations when possible.
        try:
            joined = await self.fetch_by_id(str(row.get("id")))
        except RemoteReadError:
            logger.debug("Re-read after write failed id=%s", row.get("id"), exc_info=True)
            return row
        return joined or row

    # ---- change channel ----

    async def subscribe(
        self,
        channel: str,
        handler: ChangeHandler,
        *,
        on_error: ErrorHandler | None = None,
    ) -> _PollingSubscription:
        sub = _PollingSubscription(channel=channel, handler=handler, on_error=on_error)
        try:
            rows = await self._get("/complaints", {"select": "*", "order": "created_at.desc"})
        except httpx.HTTPError as exc:
            raise SubscriptionError(f"cannot open channel {channel!r}: {exc}") from exc

        sub.snapshot, _ = diff_snapshots({}, rows)
        sub.task = asyncio.create_task(self._poll_loop(sub))
        self._subs.append(sub)
        logger.info("Polling change feed started channel=%s every %.1fs", channel, self._poll_seconds)
        return sub

    async def unsubscribe(self, handle: Any) -> None:
        if not isinstance(handle, _PollingSubscription):
            return
        if handle in self._subs:
            self._subs.remove(handle)
        task, handle.task = handle.task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Polling change feed stopped channel=%s", handle.channel)

    async def _poll_loop(self, sub: _PollingSubscription) -> None:
        while True:
            await asyncio.sleep(self._poll_seconds)

            try:
                rows = await self._get("/complaints", {"select": "*", "order": "created_at.desc"})
            except httpx.HTTPError as exc:
                logger.warning("Change feed poll failed channel=%s: %s", sub.channel, exc)
                self._report_drop(sub, exc)
                return
            except Exception as exc:
                logger.exception("Change feed poll crashed channel=%s", sub.channel)
                self._report_drop(sub, exc)
                return

            sub.snapshot, events = diff_snapshots(sub.snapshot, rows)
            if events:
                logger.debug("Change feed channel=%s events=%d", sub.channel, len(events))
            for event in events:
                try:
                    sub.handler(event)
                except Exception:
                    logger.exception("Change handler failed channel=%s", sub.channel)

    @staticmethod
    def _report_drop(sub: _PollingSubscription, exc: BaseException) -> None:
        if sub.on_error is None:
            return
        try:
            sub.on_error(SubscriptionError(f"channel {sub.channel!r} dropped: {exc}"))
        except Exception:
            logger.exception("on_error callback failed")

    # ---- complaint types ----

    async def list_types(self) -> list[Record]:
        try:
            return await self._get("/complaint_types", {"select": "*", "order": "created_at.asc"})
        except httpx.HTTPError as exc:
            raise RemoteReadError(f"list_types failed: {exc}") from exc

    async def insert_type(self, record: Record) -> Record:
        try:
            rows = await self._write("POST", "/complaint_types", body=[record])
        except httpx.HTTPError as exc:
            raise RemoteWriteError(f"insert_type failed: {exc}") from exc
        if not rows:
            raise RemoteWriteError("insert_type returned no row")
        return rows[0]

    async def update_type(self, type_id: str, patch: Record) -> Record:
        try:
            rows = await self._write("PATCH", "/complaint_types", params={"id": f"eq.{type_id}"}, body=patch)
        except httpx.HTTPError as exc:
            raise RemoteWriteError(f"update_type failed: {exc}") from exc
        if not rows:
            raise RemoteWriteError(f"no such complaint type: {type_id}")
        return rows[0]

    async def delete_type(self, type_id: str) -> None:
        try:
            await self._write("DELETE", "/complaint_types", params={"id": f"eq.{type_id}"})
        except httpx.HTTPError as exc:
            raise RemoteWriteError(f"delete_type failed: {exc}") from exc
