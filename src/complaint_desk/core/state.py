# src/complaint_desk/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field

from .catalogue import TypeCatalogue
from .duration import ENGLISH, DurationLabels
from .filters import StatusFilter
from .models import Agent
from .ports import ComplaintStore, Notifier
from .reconciler import ChangeEventReconciler
from .reminders import ReminderEscalationTracker
from .state_machine import StateMachine


@dataclass
class ViewFilters:
    """Current list filters of the console view (search / status / day)."""

    search: str = ""
    status: StatusFilter = StatusFilter.ALL
    day: str = ""


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: object

    agent: Agent
    store: ComplaintStore
    notifier: Notifier
    reconciler: ChangeEventReconciler
    state_machine: StateMachine
    reminders: ReminderEscalationTracker
    catalogue: TypeCatalogue

    duration_labels: DurationLabels = ENGLISH
    filters: ViewFilters = field(default_factory=ViewFilters)
