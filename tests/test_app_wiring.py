# tests/test_app_wiring.py

from __future__ import annotations

import io
import logging
from pathlib import Path
from types import SimpleNamespace

import pytest

from complaint_desk.cli.bootstrap import build_store, create_initial_state
from complaint_desk.config import Settings
from complaint_desk.connectors.console_connector import run_console_loop
from complaint_desk.core.duration import ARABIC
from complaint_desk.logging_setup import _ConsoleNoiseFilter, setup_logging
from complaint_desk.notify import build_notifier
from complaint_desk.notify.console import ConsoleNotifier, NullNotifier
from complaint_desk.notify.matrix import MatrixNotifier
from complaint_desk.store.rest_store import RestComplaintStore
from complaint_desk.store.sqlite_store import SQLiteComplaintStore


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DESK_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DESK_STORE", "REST")
    monkeypatch.setenv("DESK_REST_URL", " https://db.example.test ")
    monkeypatch.setenv("DESK_REST_POLL_SECONDS", "not-a-number")
    monkeypatch.setenv("DESK_NOTIFIER", "carrier-pigeon")
    monkeypatch.setenv("DESK_DURATION_LOCALE", "ar")
    monkeypatch.delenv("DESK_SQLITE_PATH", raising=False)

    s = Settings.from_env()

    assert s.store_backend == "rest"
    assert s.rest_url == "https://db.example.test"
    assert s.rest_poll_seconds == 5.0
    assert s.notifier == "console"
    assert s.duration_locale == "ar"
    assert s.sqlite_path == tmp_path / "complaints.sqlite3"
    assert s.channel_name


def test_console_noise_filter() -> None:
    f = _ConsoleNoiseFilter()

    def rec(name: str, level: int) -> logging.LogRecord:
        return logging.LogRecord(name, level, __file__, 1, "msg", None, None)

    assert f.filter(rec("complaint_desk.core.reconciler", logging.INFO))
    assert not f.filter(rec("complaint_desk.store.rest_store", logging.INFO))
    assert f.filter(rec("complaint_desk.store.rest_store", logging.WARNING))
    assert not f.filter(rec("httpx", logging.WARNING))
    assert f.filter(rec("nio", logging.ERROR))


def test_setup_logging_writes_file(tmp_path: Path) -> None:
    root = logging.getLogger()
    saved = list(root.handlers)
    try:
        setup_logging(log_dir=tmp_path, console_level=logging.WARNING)
        logging.getLogger("complaint_desk.test").info("hello file")
        for h in root.handlers:
            h.flush()
        assert "hello file" in (tmp_path / "complaint_desk.log").read_text("utf-8")
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved:
            root.addHandler(h)


def test_build_notifier_variants(settings: SimpleNamespace) -> None:
    settings.notifier = "none"
    assert isinstance(build_notifier(settings), NullNotifier)
    settings.notifier = "console"
    assert isinstance(build_notifier(settings), ConsoleNotifier)
    settings.notifier = "matrix"
    assert isinstance(build_notifier(settings), MatrixNotifier)


@pytest.mark.asyncio
async def test_console_notifier_prints_one_line() -> None:
    buf = io.StringIO()
    n = ConsoleNotifier(stream=buf)
    await n.start()
    await n.notify("New complaint", "Customer: Mona\nPhone: 0555")
    assert "[NOTICE] New complaint: Customer: Mona | Phone: 0555" in buf.getvalue()


class FakeMatrixClient:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed = False

    async def room_send(self, **kwargs) -> None:
        self.sent.append(kwargs)

    async def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_matrix_notifier_sends_text_to_room() -> None:
    client = FakeMatrixClient()
    n = MatrixNotifier(SimpleNamespace(matrix_room="!desk:example.test"), client=client)  # type: ignore[arg-type]
    await n.start()
    await n.notify("New complaint", "Customer: Mona")
    await n.close()

    assert client.sent[0]["room_id"] == "!desk:example.test"
    assert client.sent[0]["content"] == {"msgtype": "m.text", "body": "New complaint\nCustomer: Mona"}
    assert client.closed


@pytest.mark.asyncio
async def test_matrix_notifier_without_room_drops_notices() -> None:
    client = FakeMatrixClient()
    n = MatrixNotifier(SimpleNamespace(matrix_room=""), client=client)  # type: ignore[arg-type]
    await n.notify("New complaint", "x")
    assert client.sent == []


@pytest.mark.asyncio
async def test_build_store_backends(settings: SimpleNamespace) -> None:
    sqlite = build_store(settings)
    assert isinstance(sqlite, SQLiteComplaintStore)

    settings.store_backend = "rest"
    settings.rest_url = "https://db.example.test"
    rest = build_store(settings)
    assert isinstance(rest, RestComplaintStore)
    await rest.close()


def test_create_initial_state(settings: SimpleNamespace) -> None:
    settings.duration_locale = "ar"
    state = create_initial_state(settings=settings)

    assert settings.data_dir.is_dir()
    assert isinstance(state.store, SQLiteComplaintStore)
    assert isinstance(state.notifier, NullNotifier)
    assert state.duration_labels is ARABIC
    assert state.agent.name == "Sara"
    assert not state.reconciler.active


def test_console_loop(state, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    lines = iter(["", "/help", "hello", "/quit", "/never"])
    monkeypatch.setattr("builtins.input", lambda _prompt="": next(lines))

    run_console_loop(state, run=lambda coro: None)

    out = capsys.readouterr().out
    assert "Available commands:" in out
    assert "Commands start with '/'" in out
    assert "/never" not in out
