# tests/test_reconciler.py

from __future__ import annotations

import asyncio

import pytest

from complaint_desk.core.errors import RemoteReadError
from complaint_desk.core.models import ChangeEvent, ChangeKind, Complaint, ComplaintStatus
from complaint_desk.core.reconciler import ChangeEventReconciler, new_complaint_message

from .fakes import FakeComplaintStore, RecordingNotifier, make_record


def ids(rec: ChangeEventReconciler) -> list[str]:
    return [c.id for c in rec.snapshot()]


async def started(store: FakeComplaintStore, notifier: RecordingNotifier | None = None) -> ChangeEventReconciler:
    rec = ChangeEventReconciler(store, channel="test", notifier=notifier)
    await rec.start()
    return rec


@pytest.mark.asyncio
async def test_start_loads_newest_first_and_goes_live() -> None:
    store = FakeComplaintStore([make_record("old", minutes=0), make_record("new", minutes=30), make_record("mid", minutes=10)])
    rec = await started(store)

    assert rec.active and rec.live
    assert store.subscriber_count == 1
    assert ids(rec) == ["new", "mid", "old"]
    await rec.stop()


@pytest.mark.asyncio
async def test_insert_prepends_and_signals_once(notifier: RecordingNotifier) -> None:
    store = FakeComplaintStore([make_record("c1")])
    rec = await started(store, notifier)
    seen: list[Complaint] = []
    rec.on_new_complaint(seen.append)

    await store.insert(make_record("c2", minutes=5, customer_name="Mona", agent_name="Omar"))
    await rec.drain()

    assert ids(rec) == ["c2", "c1"]
    assert [c.id for c in seen] == ["c2"]
    assert notifier.titles() == ["New complaint"]
    assert "Mona" in notifier.sent[0].body

    # A replayed INSERT for a known id acts like an update: no duplicate, no second signal.
    store.records["c2"]["status"] = "Processing"
    store.emit(ChangeKind.INSERT, "c2")
    store.emit(ChangeKind.INSERT, "c2")
    await rec.drain()

    assert ids(rec) == ["c2", "c1"]
    assert rec.get("c2").status == ComplaintStatus.PROCESSING
    assert len(seen) == 1
    assert notifier.titles() == ["New complaint"]
    await rec.stop()


@pytest.mark.asyncio
async def test_concurrent_duplicate_inserts_keep_ids_unique() -> None:
    store = FakeComplaintStore()
    rec = await started(store)
    store.put(make_record("c1"))

    store.emit(ChangeKind.INSERT, "c1")
    store.emit(ChangeKind.INSERT, "c1")
    await rec.drain()

    assert ids(rec) == ["c1"]
    await rec.stop()


@pytest.mark.asyncio
async def test_update_replaces_in_place_with_store_content() -> None:
    store = FakeComplaintStore([make_record("a", minutes=2), make_record("b", minutes=1), make_record("c")])
    rec = await started(store)

    await store.update("b", {"status": "Processing", "reminder_count": 3})
    await rec.drain()

    assert ids(rec) == ["a", "b", "c"]
    b = rec.get("b")
    assert b is not None
    assert b.status.value == "Processing"
    assert b.reminder_count == 3
    await rec.stop()


@pytest.mark.asyncio
async def test_update_for_uncached_id_is_ignored() -> None:
    store = FakeComplaintStore([make_record("a")])
    rec = await started(store)
    store.put(make_record("ghost", minutes=3))

    store.emit(ChangeKind.UPDATE, "ghost")
    await rec.drain()

    assert "ghost" not in rec
    assert ids(rec) == ["a"]
    await rec.stop()


@pytest.mark.asyncio
async def test_delete_removes_without_fetching() -> None:
    store = FakeComplaintStore([make_record("a", minutes=1), make_record("b")])
    rec = await started(store)
    store.fetch_calls.clear()

    await store.delete("a")
    store.emit(ChangeKind.DELETE, "unknown")
    await rec.drain()

    assert ids(rec) == ["b"]
    assert store.fetch_calls == []
    await rec.stop()


@pytest.mark.asyncio
async def test_missing_or_failed_fetch_means_no_mutation() -> None:
    store = FakeComplaintStore([make_record("a")])
    rec = await started(store)
    before = rec.snapshot()

    # Record vanished between the event and the fetch.
    store.emit(ChangeKind.INSERT, "gone")
    await rec.drain()
    assert rec.snapshot() == before

    store.fail_reads = True
    store.emit(ChangeKind.UPDATE, "a")
    await rec.drain()
    assert rec.snapshot() == before
    await rec.stop()


@pytest.mark.asyncio
async def test_fetched_id_mismatch_is_dropped() -> None:
    store = FakeComplaintStore()
    rec = await started(store)
    store.records["x"] = make_record("y")

    store.emit(ChangeKind.INSERT, "x")
    await rec.drain()

    assert len(rec) == 0
    await rec.stop()


class GarbledStore(FakeComplaintStore):
    """Single-row reads fail with a non-domain error (e.g. an undecodable body)."""

    async def fetch_by_id(self, record_id: str):
        self.fetch_calls.append(record_id)
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


@pytest.mark.asyncio
async def test_unexpected_fetch_error_drops_the_event() -> None:
    store = GarbledStore([make_record("a")])
    rec = await started(store)
    store.put(make_record("b", minutes=3))

    task = asyncio.create_task(rec.apply_event(ChangeEvent(ChangeKind.UPDATE, "a")))
    await task
    assert task.exception() is None

    store.emit(ChangeKind.INSERT, "b")
    await rec.drain()
    assert ids(rec) == ["a"]
    assert store.fetch_calls.count("b") == 1
    await rec.stop()


@pytest.mark.asyncio
async def test_fetch_completing_after_stop_is_discarded() -> None:
    store = FakeComplaintStore([make_record("a")])
    rec = await started(store)
    store.put(make_record("late", minutes=9))
    store.hold("late")

    task = asyncio.create_task(rec.apply_event(ChangeEvent(ChangeKind.INSERT, "late")))
    await asyncio.sleep(0)
    assert store.fetch_calls[-1] == "late"

    await rec.stop()
    store.release("late")
    await task

    assert "late" not in rec
    assert store.subscriber_count == 0


@pytest.mark.asyncio
async def test_stop_cancels_scheduled_reconciliations(notifier: RecordingNotifier) -> None:
    store = FakeComplaintStore()
    rec = await started(store, notifier)
    store.put(make_record("c1"))
    store.hold("c1")

    store.emit(ChangeKind.INSERT, "c1")
    await asyncio.sleep(0)
    await rec.stop()
    store.release("c1")
    await asyncio.sleep(0)

    assert len(rec) == 0
    assert notifier.sent == []

    # Events arriving after stop are ignored outright.
    rec.handle_event(ChangeEvent(ChangeKind.INSERT, "c1"))
    await rec.drain()
    assert len(rec) == 0


@pytest.mark.asyncio
async def test_out_of_order_updates_last_fetch_wins_until_reload() -> None:
    store = FakeComplaintStore([make_record("c1")])
    rec = await started(store)

    slow = store.hold("c1")
    await store.update("c1", {"status": "Processing"})
    await asyncio.sleep(0)
    fast = store.hold("c1")
    await store.update("c1", {"status": "Suspended", "suspension_reason": "waiting"})
    await asyncio.sleep(0)

    fast.set()
    await asyncio.sleep(0)
    slow.set()
    await rec.drain()

    # No version token: the older snapshot resolved last and stays until a reload.
    assert rec.get("c1").status.value == "Processing"
    await rec.full_reload()
    assert rec.get("c1").status.value == "Suspended"
    await rec.stop()

@pytest.mark.asyncio
async def test_subscription_failure_still_loads_and_reports(notifier: RecordingNotifier) -> None:
    store = FakeComplaintStore([make_record("a")])
    store.fail_subscribe = True
    rec = await started(store, notifier)

    assert rec.active and not rec.live
    assert ids(rec) == ["a"]
    assert notifier.titles() == ["Connection problem"]
    await rec.stop()


@pytest.mark.asyncio
async def test_channel_lost_flags_offline_once(notifier: RecordingNotifier) -> None:
    store = FakeComplaintStore([make_record("a")])
    rec = await started(store, notifier)

    store.drop_channel()
    store.drop_channel()
    await rec.drain()

    assert not rec.live
    assert notifier.titles() == ["Connection lost"]
    assert ids(rec) == ["a"]
    await rec.stop()


@pytest.mark.asyncio
async def test_full_reload_failure_leaves_cache_untouched() -> None:
    store = FakeComplaintStore([make_record("a")])
    rec = await started(store)
    store.put(make_record("b", minutes=1))
    store.fail_reads = True

    with pytest.raises(RemoteReadError):
        await rec.full_reload()
    assert ids(rec) == ["a"]

    store.fail_reads = False
    await rec.full_reload()
    assert ids(rec) == ["b", "a"]
    await rec.stop()


@pytest.mark.asyncio
async def test_failing_listeners_and_notifier_do_not_block_reconciliation() -> None:
    notifier = RecordingNotifier(fail=True)
    store = FakeComplaintStore()
    rec = await started(store, notifier)
    changes: list[int] = []

    def boom(_c: Complaint) -> None:
        raise RuntimeError("listener bug")

    rec.on_new_complaint(boom)
    rec.on_change(lambda: changes.append(len(rec)))

    await store.insert(make_record("c1"))
    await rec.drain()

    assert ids(rec) == ["c1"]
    assert changes[-1] == 1
    await rec.stop()


def test_new_complaint_message() -> None:
    c = Complaint.from_record(make_record("c1", customer_name="Mona", customer_number="0555"))
    title, body = new_complaint_message(c)
    assert title == "New complaint"
    assert "Mona" in body and "0555" in body and "Sara" in body
