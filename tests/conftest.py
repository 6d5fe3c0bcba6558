# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from complaint_desk.connectors.runtime import BackgroundLoop, start_background_loop
from complaint_desk.core.catalogue import TypeCatalogue
from complaint_desk.core.duration import ENGLISH
from complaint_desk.core.models import Agent
from complaint_desk.core.reconciler import ChangeEventReconciler
from complaint_desk.core.reminders import ReminderEscalationTracker
from complaint_desk.core.state import AppState
from complaint_desk.core.state_machine import StateMachine
from complaint_desk.store.sqlite_store import SQLiteComplaintStore

from .fakes import FakeComplaintStore, RecordingNotifier


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap helpers.

    A SimpleNamespace rather than the real config keeps unit tests isolated
    from the environment and any local .env file.
    """
    return SimpleNamespace(
        app_name="complaint-desk-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        store_backend="sqlite",
        sqlite_path=tmp_path / "data" / "complaints.sqlite3",
        rest_url="",
        rest_api_key=None,
        rest_poll_seconds=0.05,
        channel_name="test-channel",
        agent_id="a1",
        agent_name="Sara",
        notifier="none",
        duration_locale="en",
    )


@pytest.fixture()
def agent() -> Agent:
    return Agent(id="a1", name="Sara")


@pytest.fixture()
def store() -> FakeComplaintStore:
    return FakeComplaintStore()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def sqlite_store(tmp_path: Path) -> SQLiteComplaintStore:
    s = SQLiteComplaintStore(tmp_path / "complaints.sqlite3")
    s.add_agent("a1", "Sara")
    s.add_agent("a2", "Omar")
    return s


@pytest.fixture()
def state(settings: SimpleNamespace, sqlite_store: SQLiteComplaintStore, notifier: RecordingNotifier) -> AppState:
    """
    AppState wired with a real SQLite store and a recording notifier.

    The SQLite store is kept real here because its change channel is part
    of what the command tests exercise end to end.
    """
    reconciler = ChangeEventReconciler(sqlite_store, channel=settings.channel_name, notifier=notifier)
    return AppState(
        settings=settings,
        agent=Agent(id=settings.agent_id, name=settings.agent_name),
        store=sqlite_store,
        notifier=notifier,
        reconciler=reconciler,
        state_machine=StateMachine(sqlite_store),
        reminders=ReminderEscalationTracker(sqlite_store),
        catalogue=TypeCatalogue(sqlite_store),
        duration_labels=ENGLISH,
    )


@pytest.fixture()
def bg():
    """Background event loop, the same one the console runs commands on."""
    loop: BackgroundLoop = start_background_loop()
    yield loop
    loop.stop()
    loop.join(timeout=5.0)
