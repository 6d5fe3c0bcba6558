# tests/test_filters.py

from __future__ import annotations

from datetime import date

import pytest

from complaint_desk.core.filters import (
    ExportCriteria,
    StatusFilter,
    filter_complaints,
    select_for_export,
    unique_agents,
)
from complaint_desk.core.models import Complaint, ComplaintStatus

from .fakes import make_record


def cache() -> list[Complaint]:
    rows = [
        make_record("aaa111", minutes=60 * 48, customer_name="Ahmed Ali", customer_number="0501112222", reminder_count=5),
        make_record("bbb222", minutes=60 * 24, customer_name="Mona Saleh", customer_number="0553334444",
                    status="Processing", reminder_count=2, agent_id="a2", agent_name="Omar", type_id="t2"),
        make_record("ccc333", minutes=0, customer_name="ahmed hassan", customer_number="0509990000",
                    status="Resolved", reminder_count=1),
    ]
    return [Complaint.from_record(r) for r in rows]


def ids(items: list[Complaint]) -> list[str]:
    return [c.id for c in items]


def test_no_filters_keeps_cache_order() -> None:
    items = cache()
    assert ids(filter_complaints(items)) == ["aaa111", "bbb222", "ccc333"]


def test_search_matches_name_case_insensitively_and_number_and_id() -> None:
    items = cache()
    assert ids(filter_complaints(items, "AHMED")) == ["aaa111", "ccc333"]
    assert ids(filter_complaints(items, "0553")) == ["bbb222"]
    assert ids(filter_complaints(items, "ccc")) == ["ccc333"]
    assert filter_complaints(items, "nobody") == []


def test_status_and_priority_filters() -> None:
    items = cache()
    assert ids(filter_complaints(items, status_filter="Processing")) == ["bbb222"]
    assert ids(filter_complaints(items, status_filter=StatusFilter.RESOLVED)) == ["ccc333"]
    assert ids(filter_complaints(items, status_filter="HighPriority")) == ["aaa111"]
    # MediumPriority is an inclusive lower bound, so high-priority rows show up too.
    assert ids(filter_complaints(items, status_filter="MediumPriority")) == ["aaa111", "bbb222"]


def test_status_filter_parse() -> None:
    assert StatusFilter.parse(None) is StatusFilter.ALL
    assert StatusFilter.parse("high_priority") is StatusFilter.HIGH_PRIORITY
    assert StatusFilter.parse("pending") is StatusFilter.PENDING
    with pytest.raises(ValueError):
        StatusFilter.parse("Archived")


def test_date_filter_is_exact_day() -> None:
    items = cache()
    assert ids(filter_complaints(items, date_filter="2024-01-02")) == ["bbb222"]
    assert ids(filter_complaints(items, date_filter=date(2024, 1, 1))) == ["ccc333"]
    assert filter_complaints(items, date_filter="2024-02-01") == []


def test_filters_combine_and_never_mutate() -> None:
    items = cache()
    before = list(items)
    out = filter_complaints(items, "ahmed", "Pending", "2024-01-03")
    assert ids(out) == ["aaa111"]
    assert items == before


def test_select_for_export_criteria() -> None:
    items = cache()
    assert ids(select_for_export(items, ExportCriteria())) == ["aaa111", "bbb222", "ccc333"]
    assert ids(select_for_export(items, ExportCriteria(agent_id="a2"))) == ["bbb222"]
    assert ids(select_for_export(items, ExportCriteria(type_id="t1"))) == ["aaa111", "ccc333"]
    assert ids(select_for_export(items, ExportCriteria(status=ComplaintStatus.RESOLVED))) == ["ccc333"]
    # Date bounds are whole days, inclusive at both ends.
    bounded = ExportCriteria(date_from=date(2024, 1, 1), date_to=date(2024, 1, 2))
    assert ids(select_for_export(items, bounded)) == ["bbb222", "ccc333"]


def test_unique_agents_first_seen_first() -> None:
    assert unique_agents(cache()) == [("a1", "Sara"), ("a2", "Omar")]
