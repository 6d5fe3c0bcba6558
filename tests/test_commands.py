# tests/test_commands.py

from __future__ import annotations

from datetime import timezone

import pytest

from complaint_desk.cli.bootstrap import start_services, stop_services
from complaint_desk.cli.commands import CommandRegistry, registry
from complaint_desk.core.state import AppState


def test_command_registry_routes_3_and_4_params(state) -> None:
    reg = CommandRegistry()
    called = {"h3": 0, "h4": 0}

    def h3(state, args, run):
        called["h3"] += 1
        return "h3"

    def h4(state, args, run, emit):
        called["h4"] += 1
        if emit is not None:
            emit("note")
        return "h4"

    reg.register("a", h3, "a")
    reg.register("b", h4, "b", aliases=["bee"])

    assert reg.handle(state, "/a x", run=lambda c: None) == "h3"
    assert reg.handle(state, "/BEE y", run=lambda c: None, emit=lambda _: None) == "h4"
    assert called == {"h3": 1, "h4": 1}


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello", run=lambda c: None) is None
    assert "Unknown command" in (reg.handle(state, "/nope", run=lambda c: None) or "")
    assert "Empty command" in (reg.handle(state, "/", run=lambda c: None) or "")


@pytest.fixture()
def live(state: AppState, bg):
    """State with services running on a background loop, like the console app."""
    bg.run(state.catalogue.create("Delivery"), timeout=5.0)
    bg.run(start_services(state), timeout=5.0)
    yield state, bg.run
    bg.run(stop_services(state), timeout=5.0)


def submit(state: AppState, run, name: str, number: str) -> str:
    type_id = state.catalogue.types[0].id
    reply = registry.handle(state, f"/submit {type_id} {name} {number}", run)
    assert reply is not None and reply.startswith("Complaint submitted: #")
    return state.reconciler.snapshot()[0].id


def test_submit_process_remind_resolve_flow(live) -> None:
    state, run = live
    cid = submit(state, run, "Mona_Saleh", "0555")
    assert state.reconciler.get(cid).customer_name == "Mona Saleh"

    assert "now Processing" in registry.handle(state, f"/process {cid[:8]}", run)
    assert state.reconciler.get(cid).status.value == "Processing"

    reply = registry.handle(state, f"/remind {cid}", run)
    assert "now has 1" in reply
    registry.handle(state, f"/remind {cid}", run)
    assert state.reconciler.get(cid).reminder_count == 2

    reply = registry.handle(state, f"/resolve {cid}", run)
    assert reply.startswith("ValidationError:")

    assert "now Resolved" in registry.handle(state, f"/resolve {cid} refund issued", run)
    resolved = state.reconciler.get(cid)
    assert resolved.closure_reason == "refund issued"
    assert resolved.resolver_name == "Sara"

    reply = registry.handle(state, f"/suspend {cid} too late", run)
    assert reply.startswith("IllegalTransitionError:")

    shown = registry.handle(state, f"/show {cid}", run)
    assert "Time to close:" in shown
    assert "none (closed)" in shown


def test_new_complaint_is_announced(live) -> None:
    state, run = live
    submit(state, run, "Mona", "0555")
    assert state.notifier.titles() == ["New complaint"]


def test_list_filters_and_status(live) -> None:
    state, run = live
    submit(state, run, "Ahmed", "0501")
    cid = submit(state, run, "Mona", "0555")
    registry.handle(state, f"/process {cid}", run)

    out = registry.handle(state, "/list --status Processing", run)
    assert "1 complaint(s)" in out and "Mona" in out

    out = registry.handle(state, "/list ahmed --status All", run)
    assert "Ahmed" in out and "Mona" not in out

    assert registry.handle(state, "/list --status Archived", run).startswith("Bad filter")
    assert "No complaints found." == registry.handle(state, "/list --date 2001-01-01", run)

    status = registry.handle(state, "/status", run)
    assert "Cached complaints: 2" in status
    assert "Live updates: ON" in status


def test_export_and_share(live, tmp_path) -> None:
    state, run = live
    cid = submit(state, run, "Mona", "0555")

    target = tmp_path / "out.csv"
    progress: list[str] = []
    assert registry.handle(state, f"/export {target}", run, emit=progress.append).startswith("Exported 1")
    assert progress == [f"Writing 1 row(s) x 13 column(s) to {target}..."]
    assert target.exists()

    text = registry.handle(state, f"/share {cid}", run)
    assert text.splitlines()[0] == "*Customer name:* Mona"


def test_reload_and_types(live) -> None:
    state, run = live
    submit(state, run, "Mona", "0555")
    progress: list[str] = []
    assert registry.handle(state, "/reload", run, emit=progress.append) == "Reloaded 1 complaint(s)."
    assert progress == ["Reloading complaints (1 cached)..."]
    assert registry.handle(state, "/reload", run) == "Reloaded 1 complaint(s)."
    assert "Delivery" in registry.handle(state, "/types", run)


def test_list_rows_show_the_day_date_filter_matches(live) -> None:
    state, run = live
    cid = submit(state, run, "Mona", "0555")
    day = state.reconciler.get(cid).created_at.astimezone(timezone.utc).strftime("%Y-%m-%d")

    out = registry.handle(state, f"/list --date {day}", run)
    assert "1 complaint(s)" in out
    row = next(line for line in out.splitlines() if "Mona" in line)
    assert f"  {day}  " in row
