# src/complaint_desk/store/sqlite_store.py

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
import sqlite3
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from ..core.errors import RemoteReadError, RemoteWriteError, SubscriptionError
from ..core.models import ChangeEvent, ChangeKind, parse_ts, utc_now
from ..core.ports import ChangeHandler, ErrorHandler, Record

logger = logging.getLogger(__name__)

T = TypeVar("T")

_JSON_COLUMNS = {"form_data": "{}", "reminder_logs": "[]"}

_WRITABLE_COLUMNS = (
    "customer_name",
    "customer_number",
    "type_id",
    "form_data",
    "notes",
    "status",
    "suspension_reason",
    "closure_reason",
    "resolved_by",
    "resolved_at",
    "reminder_count",
    "reminder_logs",
    "agent_id",
)

_TYPE_COLUMNS = ("name", "instructions", "fields")

_JOINED_SELECT = """
    SELECT c.*,
           t.name   AS type_name,
           t.fields AS type_fields,
           a.name   AS agent_name,
           r.name   AS resolver_name
    FROM complaints c
    LEFT JOIN complaint_types t ON t.id = c.type_id
    LEFT JOIN agents a ON a.id = c.agent_id
    LEFT JOIN agents r ON r.id = c.resolved_by
"""


def _iso(raw: Any) -> str | None:
    # Fixed-width ISO text so ORDER BY on the column is chronological.
    dt = parse_ts(raw)
    return dt.isoformat(timespec="microseconds") if dt is not None else None


class SQLiteComplaintStore:
    """
    SQLite complaint store with an in-process change channel.

    Used as the authoritative store for local runs and tests. Every committed
    insert/update/delete is published as a ChangeEvent to all subscribers,
    the same way a hosted database would push row changes.

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each call opens its own SQLite connection
    - blocking work runs off the event loop via asyncio.to_thread
    """

    def __init__(self, db_path: str | Path = "complaints.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

        self._subscribers: dict[int, tuple[str, ChangeHandler, ErrorHandler | None]] = {}
        self._handle_seq = itertools.count(1)
        self._closed = False

        try:
            total = self.count_complaints()
        except sqlite3.Error:
            total = -1
        logger.info("SQLiteComplaintStore ready db=%s total=%s", self._db_path, total)

    async def close(self) -> None:
        self._closed = True
        self._subscribers.clear()

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS agents (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS complaint_types (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    instructions TEXT NOT NULL DEFAULT '',
                    fields TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS complaints (
                    id TEXT PRIMARY KEY,
                    customer_name TEXT NOT NULL,
                    customer_number TEXT NOT NULL,
                    type_id TEXT,
                    form_data TEXT NOT NULL DEFAULT '{}',
                    status TEXT NOT NULL DEFAULT 'Pending',
                    created_at TEXT NOT NULL,
                    agent_id TEXT
                )
                """
            )

            cur.execute("PRAGMA table_info(complaints)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE complaints ADD COLUMN {name} {decl}")
                logger.info("SQLiteComplaintStore migration: added column %s", name)

            add_col("notes", "TEXT NOT NULL DEFAULT ''")
            add_col("suspension_reason", "TEXT")
            add_col("closure_reason", "TEXT")
            add_col("resolved_by", "TEXT")
            add_col("resolved_at", "TEXT")
            add_col("reminder_count", "INTEGER NOT NULL DEFAULT 0")
            add_col("reminder_logs", "TEXT NOT NULL DEFAULT '[]'")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_complaints_created ON complaints(created_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_complaints_agent ON complaints(agent_id)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if column in _JSON_COLUMNS or column == "fields":
            return json.dumps(value if value is not None else [], ensure_ascii=False)
        if column == "resolved_at":
            return _iso(value)
        return value

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Record:
        record = dict(row)
        for column, default in _JSON_COLUMNS.items():
            record[column] = json.loads(record.get(column) or default)
        if "type_fields" in record:
            record["type_fields"] = json.loads(record.get("type_fields") or "[]")
        return record

    @staticmethod
    def _type_row_to_record(row: sqlite3.Row) -> Record:
        record = dict(row)
        record["fields"] = json.loads(record.get("fields") or "[]")
        return record

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(fn, *args)

    def _publish(self, kind: ChangeKind, record_id: str) -> None:
        event = ChangeEvent(kind=kind, record_id=str(record_id))
        for handle, (channel, handler, _on_error) in list(self._subscribers.items()):
            try:
                handler(event)
            except Exception:
                logger.exception("Change handler failed handle=%s channel=%s", handle, channel)

    # ---- sync implementations (run in worker threads) ----

    def count_complaints(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM complaints").fetchone()
            return int(n)
        finally:
            conn.close()

    def _fetch_by_id_sync(self, record_id: str) -> Record | None:
        conn = self._get_conn()
        try:
            row = conn.execute(_JOINED_SELECT + " WHERE c.id = ?", (str(record_id),)).fetchone()
            return self._row_to_record(row) if row else None
        finally:
            conn.close()

    def _fetch_all_sync(self) -> list[Record]:
        conn = self._get_conn()
        try:
            rows = conn.execute(_JOINED_SELECT + " ORDER BY c.created_at DESC").fetchall()
            return [self._row_to_record(r) for r in rows]
        finally:
            conn.close()

    def _insert_sync(self, record: Record) -> str:
        record_id = str(record.get("id") or uuid.uuid4())
        created_at = _iso(record.get("created_at")) or _iso(utc_now())

        columns = ["id", "created_at"]
        params: list[Any] = [record_id, created_at]
        for column in _WRITABLE_COLUMNS:
            if column in record:
                columns.append(column)
                params.append(self._encode(column, record[column]))

        placeholders = ", ".join("?" for _ in columns)
        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT INTO complaints({', '.join(columns)}) VALUES ({placeholders})",
                params,
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Complaint inserted id=%s", record_id)
        return record_id

    def _update_sync(self, record_id: str, patch: Record) -> int:
        fields: list[str] = []
        params: list[Any] = []
        for column, value in patch.items():
            if column not in _WRITABLE_COLUMNS:
                raise ValueError(f"column {column!r} is not writable")
            fields.append(f"{column} = ?")
            params.append(self._encode(column, value))
        if not fields:
            return 0
        params.append(str(record_id))

        conn = self._get_conn()
        try:
            cur = conn.execute(f"UPDATE complaints SET {', '.join(fields)} WHERE id = ?", params)
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()

    def _delete_sync(self, record_id: str) -> int:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM complaints WHERE id = ?", (str(record_id),))
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()

    def _list_types_sync(self) -> list[Record]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM complaint_types ORDER BY created_at ASC").fetchall()
            return [self._type_row_to_record(r) for r in rows]
        finally:
            conn.close()

    def _get_type_sync(self, type_id: str) -> Record | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM complaint_types WHERE id = ?", (str(type_id),)).fetchone()
            return self._type_row_to_record(row) if row else None
        finally:
            conn.close()

    def _insert_type_sync(self, record: Record) -> str:
        type_id = str(record.get("id") or uuid.uuid4())
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO complaint_types(id, name, instructions, fields, created_at) VALUES (?, ?, ?, ?, ?)",
                (
                    type_id,
                    str(record.get("name") or ""),
                    str(record.get("instructions") or ""),
                    self._encode("fields", record.get("fields") or []),
                    _iso(utc_now()),
                ),
            )
            conn.commit()
        finally:
            conn.close()
        return type_id

    def _update_type_sync(self, type_id: str, patch: Record) -> int:
        fields: list[str] = []
        params: list[Any] = []
        for column in _TYPE_COLUMNS:
            if column in patch:
                fields.append(f"{column} = ?")
                params.append(self._encode(column, patch[column]))
        if not fields:
            return 0
        params.append(str(type_id))
        conn = self._get_conn()
        try:
            cur = conn.execute(f"UPDATE complaint_types SET {', '.join(fields)} WHERE id = ?", params)
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()

    def _delete_type_sync(self, type_id: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM complaint_types WHERE id = ?", (str(type_id),))
            conn.commit()
        finally:
            conn.close()

    def add_agent(self, agent_id: str, name: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO agents(id, name) VALUES (?, ?) ON CONFLICT(id) DO UPDATE SET name = excluded.name",
                (str(agent_id), name),
            )
            conn.commit()
        finally:
            conn.close()

    # ---- public async API (ComplaintStore port) ----

    async def fetch_by_id(self, record_id: str) -> Record | None:
        try:
            return await self._run(self._fetch_by_id_sync, record_id)
        except sqlite3.Error as exc:
            raise RemoteReadError(f"fetch failed: {exc}", complaint_id=record_id) from exc

    async def fetch_all(self) -> list[Record]:
        try:
            return await self._run(self._fetch_all_sync)
        except sqlite3.Error as exc:
            raise RemoteReadError(f"fetch_all failed: {exc}") from exc

    async def insert(self, record: Record) -> Record:
        try:
            record_id = await self._run(self._insert_sync, record)
            written = await self._run(self._fetch_by_id_sync, record_id)
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise RemoteWriteError(f"insert failed: {exc}") from exc
        if written is None:
            raise RemoteWriteError("insert did not persist", complaint_id=record_id)
        self._publish(ChangeKind.INSERT, record_id)
        return written

    async def update(self, record_id: str, patch: Record) -> Record:
        try:
            count = await self._run(self._update_sync, record_id, patch)
            written = await self._run(self._fetch_by_id_sync, record_id)
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise RemoteWriteError(f"update failed: {exc}", complaint_id=record_id) from exc
        if count == 0 or written is None:
            raise RemoteWriteError("no such complaint", complaint_id=record_id)
        self._publish(ChangeKind.UPDATE, record_id)
        return written

    async def delete(self, record_id: str) -> bool:
        """Administrative delete. The complaint core itself never deletes."""
        try:
            count = await self._run(self._delete_sync, record_id)
        except sqlite3.Error as exc:
            raise RemoteWriteError(f"delete failed: {exc}", complaint_id=record_id) from exc
        if count:
            self._publish(ChangeKind.DELETE, record_id)
        return bool(count)

    async def subscribe(
        self,
        channel: str,
        handler: ChangeHandler,
        *,
        on_error: ErrorHandler | None = None,
    ) -> int:
        if self._closed:
            raise SubscriptionError("store is closed")
        handle = next(self._handle_seq)
        self._subscribers[handle] = (channel, handler, on_error)
        logger.debug("Subscribed handle=%s channel=%s", handle, channel)
        return handle

    async def unsubscribe(self, handle: Any) -> None:
        self._subscribers.pop(handle, None)
        logger.debug("Unsubscribed handle=%s", handle)

    async def list_types(self) -> list[Record]:
        try:
            return await self._run(self._list_types_sync)
        except sqlite3.Error as exc:
            raise RemoteReadError(f"list_types failed: {exc}") from exc

    async def insert_type(self, record: Record) -> Record:
        try:
            type_id = await self._run(self._insert_type_sync, record)
            written = await self._run(self._get_type_sync, type_id)
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise RemoteWriteError(f"insert_type failed: {exc}") from exc
        if written is None:
            raise RemoteWriteError("complaint type did not persist")
        return written

    async def update_type(self, type_id: str, patch: Record) -> Record:
        try:
            count = await self._run(self._update_type_sync, type_id, patch)
            written = await self._run(self._get_type_sync, type_id)
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise RemoteWriteError(f"update_type failed: {exc}") from exc
        if count == 0 or written is None:
            raise RemoteWriteError(f"no such complaint type: {type_id}")
        return written

    async def delete_type(self, type_id: str) -> None:
        try:
            await self._run(self._delete_type_sync, type_id)
        except sqlite3.Error as exc:
            raise RemoteWriteError(f"delete_type failed: {exc}") from exc
