# src/complaint_desk/reporting/export.py

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

from ..core.duration import ENGLISH, DurationLabels, duration
from ..core.models import Complaint, ComplaintType

logger = logging.getLogger(__name__)

MISSING = "-"


@dataclass(frozen=True, slots=True)
class Column:
    key: str
    label: str


BASE_COLUMNS: tuple[Column, ...] = (
    Column("id", "ID"),
    Column("customer_name", "Customer name"),
    Column("customer_number", "Phone"),
    Column("type_name", "Type"),
    Column("agent_name", "Raised by"),
    Column("status_label", "Status"),
    Column("created_date", "Created date"),
    Column("created_time", "Created time"),
    Column("closed_at", "Closed at"),
    Column("duration", "Duration"),
    Column("closure_reason", "Closure reason"),
    Column("resolver_name", "Closed by"),
    Column("notes", "Notes"),
)


def default_export_name(today: date | None = None) -> str:
    today = today or date.today()
    return f"Complaints_Report_{today.isoformat()}.csv"


def _field_label(complaint: Complaint, types_by_id: dict[str, ComplaintType], field_id: str) -> str | None:
    label = complaint.label_for(field_id)
    if label:
        return label
    ct = types_by_id.get(complaint.type_id or "")
    return ct.label_for(field_id) if ct is not None else None


def export_rows(
    complaints: Iterable[Complaint],
    types: Iterable[ComplaintType] = (),
    *,
    labels: DurationLabels = ENGLISH,
) -> tuple[list[Column], list[dict[str, str]]]:
    """
    Flat, column-labelled projection of complaints for report generators.

    Dynamic form_data values are flattened into one column per field label
    (label looked up on the complaint's type); unlabelled keys and "notes"
    are skipped. Columns appear in first-seen order after the base columns.
    """
    types_by_id = {t.id: t for t in types if t.id is not None}
    columns = list(BASE_COLUMNS)
    dynamic: dict[str, Column] = {}
    rows: list[dict[str, str]] = []

    for c in complaints:
        created = c.created_at.astimezone()
        row: dict[str, Any] = {
            "id": c.id[:8],
            "customer_name": c.customer_name,
            "customer_number": c.customer_number,
            "type_name": c.type_name,
            "agent_name": c.agent_name,
            "status_label": c.status.value,
            "created_date": created.strftime("%Y-%m-%d"),
            "created_time": created.strftime("%H:%M:%S"),
            "closed_at": c.resolved_at.astimezone().strftime("%Y-%m-%d %H:%M") if c.resolved_at else None,
            "duration": duration(c.created_at, c.resolved_at, labels),
            "closure_reason": c.closure_reason,
            "resolver_name": c.resolver_name,
            "notes": c.notes,
        }

        for field_id, value in c.form_data.items():
            if field_id == "notes":
                continue
            label = _field_label(c, types_by_id, field_id)
            if not label:
                continue
            key = f"field:{label}"
            if key not in dynamic:
                dynamic[key] = Column(key, label)
            row[key] = value

        rows.append({k: (str(v) if v not in (None, "") else MISSING) for k, v in row.items()})

    columns.extend(dynamic.values())
    for row in rows:
        for col in columns:
            row.setdefault(col.key, MISSING)
    return columns, rows


def write_csv(rows: Sequence[dict[str, str]], columns: Sequence[Column], path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    # utf-8-sig so spreadsheet apps detect the encoding of non-Latin names.
    with out.open("w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.writer(fh)
        writer.writerow([c.label for c in columns])
        for row in rows:
            writer.writerow([row.get(c.key, MISSING) for c in columns])
    logger.info("Exported %d rows to %s", len(rows), out)
    return out
