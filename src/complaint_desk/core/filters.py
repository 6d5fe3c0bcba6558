# src/complaint_desk/core/filters.py

"""
Pure derivations over the reconciler's cache.

Nothing here mutates its input; every function keeps the cache order.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, timedelta
from enum import StrEnum

from .models import (
    HIGH_PRIORITY_THRESHOLD,
    MEDIUM_PRIORITY_THRESHOLD,
    Complaint,
    ComplaintStatus,
)


class StatusFilter(StrEnum):
    ALL = "All"
    PENDING = "Pending"
    PROCESSING = "Processing"
    SUSPENDED = "Suspended"
    RESOLVED = "Resolved"
    # Both are inclusive lower bounds: every HighPriority row is also MediumPriority.
    HIGH_PRIORITY = "HighPriority"
    MEDIUM_PRIORITY = "MediumPriority"

    @classmethod
    def parse(cls, raw: str | StatusFilter | None) -> StatusFilter:
        if raw is None or raw == "":
            return cls.ALL
        if isinstance(raw, StatusFilter):
            return raw
        key = str(raw).strip().lower().replace("_", "").replace("-", "")
        for member in cls:
            if member.value.lower() == key:
                return member
        raise ValueError(f"Unknown status filter: {raw!r}")

    def matches(self, complaint: Complaint) -> bool:
        if self is StatusFilter.ALL:
            return True
        if self is StatusFilter.HIGH_PRIORITY:
            return complaint.reminder_count >= HIGH_PRIORITY_THRESHOLD
        if self is StatusFilter.MEDIUM_PRIORITY:
            return complaint.reminder_count >= MEDIUM_PRIORITY_THRESHOLD
        return complaint.status == ComplaintStatus(self.value)


def created_day(complaint: Complaint) -> date:
    return complaint.created_at.astimezone(UTC).date()


def _parse_day(raw: str | date | None) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw).strip())


def matches_search(complaint: Complaint, term: str) -> bool:
    if not term:
        return True
    lower = term.lower()
    return (
        lower in complaint.customer_name.lower()
        or term in complaint.customer_number
        or term in str(complaint.id)
    )


def filter_complaints(
    cache: Iterable[Complaint],
    search_term: str = "",
    status_filter: str | StatusFilter = StatusFilter.ALL,
    date_filter: str | date | None = "",
) -> list[Complaint]:
    """
    Visible subset of the cache, in cache order.

    - search_term: case-insensitive on customer_name, raw substring on
      customer_number, substring on the id
    - status_filter: All | a status | HighPriority (>= 4 reminders) | MediumPriority (>= 2)
    - date_filter: exact calendar day of created_at (YYYY-MM-DD)
    """
    term = search_term or ""
    status = StatusFilter.parse(status_filter)
    day = _parse_day(date_filter)

    out: list[Complaint] = []
    for c in cache:
        if term and not matches_search(c, term):
            continue
        if not status.matches(c):
            continue
        if day is not None and created_day(c) != day:
            continue
        out.append(c)
    return out


@dataclass(frozen=True, slots=True)
class ExportCriteria:
    """Report selection. Empty fields don't filter; date bounds are whole days, inclusive."""

    agent_id: str | None = None
    type_id: str | None = None
    status: ComplaintStatus | None = None
    date_from: date | None = None
    date_to: date | None = None


def select_for_export(cache: Iterable[Complaint], criteria: ExportCriteria) -> list[Complaint]:
    out: list[Complaint] = []
    for c in cache:
        if criteria.agent_id and c.agent_id != criteria.agent_id:
            continue
        if criteria.type_id and c.type_id != criteria.type_id:
            continue
        if criteria.status is not None and c.status != criteria.status:
            continue
        day = created_day(c)
        if criteria.date_from is not None and day < criteria.date_from:
            continue
        if criteria.date_to is not None and day >= criteria.date_to + timedelta(days=1):
            continue
        out.append(c)
    return out


def unique_agents(cache: Iterable[Complaint]) -> list[tuple[str, str]]:
    """Distinct (agent_id, agent_name) pairs, first seen first."""
    seen: set[str] = set()
    out: list[tuple[str, str]] = []
    for c in cache:
        if not c.agent_id or c.agent_id in seen or not c.agent_name:
            continue
        seen.add(c.agent_id)
        out.append((c.agent_id, c.agent_name))
    return out
