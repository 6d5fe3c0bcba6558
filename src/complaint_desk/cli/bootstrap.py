# src/complaint_desk/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the store adapter, notifier and core services into AppState,
- starts/stops them in one place.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.catalogue import TypeCatalogue
from ..core.duration import labels_for
from ..core.errors import RemoteReadError
from ..core.models import Agent
from ..core.ports import ComplaintStore
from ..core.reconciler import ChangeEventReconciler
from ..core.reminders import ReminderEscalationTracker
from ..core.state import AppState
from ..core.state_machine import StateMachine
from ..notify import build_notifier
from ..store.sqlite_store import SQLiteComplaintStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)


def build_store(settings) -> ComplaintStore:
    if settings.store_backend == "rest":
        from ..store.rest_store import RestComplaintStore

        return RestComplaintStore(
            settings.rest_url,
            settings.rest_api_key,
            poll_seconds=settings.rest_poll_seconds,
        )

    store = SQLiteComplaintStore(settings.sqlite_path)
    # Names shown as "raised by" / "closed by" come from the agents table.
    store.add_agent(settings.agent_id, settings.agent_name)
    return store


def create_initial_state(*, settings=None, store: ComplaintStore | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the store) injectable makes the app easier to test
    and avoids hidden global config reads. If settings is None, falls back to
    get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if store is None:
        store = build_store(settings)
    notifier = build_notifier(settings)

    reconciler = ChangeEventReconciler(store, channel=settings.channel_name, notifier=notifier)

    return AppState(
        settings=settings,
        agent=Agent(id=settings.agent_id, name=settings.agent_name),
        store=store,
        notifier=notifier,
        reconciler=reconciler,
        state_machine=StateMachine(store),
        reminders=ReminderEscalationTracker(store),
        catalogue=TypeCatalogue(store),
        duration_labels=labels_for(settings.duration_locale),
    )


async def start_services(state: AppState) -> None:
    await state.notifier.start()
    try:
        await state.catalogue.load()
    except RemoteReadError:
        logger.exception("Failed to load complaint types.")
    await state.reconciler.start()
    logger.info("Services started (cache=%d, live=%s)", len(state.reconciler), state.reconciler.live)


async def stop_services(state: AppState) -> None:
    """Best-effort shutdown: each step runs even if an earlier one fails."""
    try:
        await state.reconciler.stop()
    except Exception:
        logger.exception("Reconciler stop failed.")
    try:
        await state.notifier.close()
    except Exception:
        logger.exception("Notifier close failed.")
    try:
        await state.store.close()
    except Exception:
        logger.exception("Store close failed.")
