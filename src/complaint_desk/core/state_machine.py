# src/complaint_desk/core/state_machine.py

from __future__ import annotations

"""
Complaint lifecycle state machine.

Graph:
  Pending                         -> Processing   (no reason)
  Pending | Processing | Suspended -> Suspended   (reason required)
  Pending | Processing | Suspended -> Resolved    (reason required, terminal)

The machine only issues writes to the store. It never touches the local
cache: the new status becomes visible once the reconciler processes the
store's change event (or after an explicit full reload by the caller).
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from .errors import (
    IllegalTransitionError,
    RemoteReadError,
    RemoteWriteError,
    ValidationError,
)
from .models import Agent, Complaint, ComplaintStatus, format_ts, utc_now
from .ports import ComplaintStore

logger = logging.getLogger(__name__)

S = ComplaintStatus

TRANSITIONS: dict[ComplaintStatus, frozenset[ComplaintStatus]] = {
    S.PENDING: frozenset({S.PROCESSING, S.SUSPENDED, S.RESOLVED}),
    S.PROCESSING: frozenset({S.SUSPENDED, S.RESOLVED}),
    S.SUSPENDED: frozenset({S.SUSPENDED, S.RESOLVED}),
    S.RESOLVED: frozenset(),
}

REASON_REQUIRED = frozenset({S.SUSPENDED, S.RESOLVED})


def allowed_targets(status: ComplaintStatus) -> frozenset[ComplaintStatus]:
    return TRANSITIONS.get(status, frozenset())


def can_transition(current: ComplaintStatus, target: ComplaintStatus) -> bool:
    return target in allowed_targets(current)


def _clean_reason(reason: str | None) -> str:
    return (reason or "").strip()


class StateMachine:
    def __init__(
        self,
        store: ComplaintStore,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    async def transition(
        self,
        complaint_id: str,
        target: ComplaintStatus | str,
        reason: str | None = None,
        acting_agent: Agent | None = None,
    ) -> Complaint:
        """
        Validate and issue one lifecycle transition.

        Raises:
        - ValidationError: blank reason for Suspended/Resolved, or no acting agent
          for Resolved (checked before any remote call)
        - IllegalTransitionError: current status is Resolved, or the edge is not in the graph
        - RemoteReadError / RemoteWriteError: store failures (not retried)

        Returns the record as written by the store.
        """
        target = ComplaintStatus(target)
        clean = _clean_reason(reason)

        if target in REASON_REQUIRED and not clean:
            raise ValidationError(
                f"A reason is required to move a complaint to {target.value}",
                complaint_id=complaint_id,
            )
        if target == S.RESOLVED and acting_agent is None:
            raise ValidationError("Resolving a complaint requires an acting agent", complaint_id=complaint_id)

        current = await self._load(complaint_id)

        if current.status == S.RESOLVED:
            raise IllegalTransitionError(
                "Complaint is already resolved",
                complaint_id=complaint_id,
                current=current.status.value,
                target=target.value,
            )
        if not can_transition(current.status, target):
            raise IllegalTransitionError(
                f"Cannot move complaint from {current.status.value} to {target.value}",
                complaint_id=complaint_id,
                current=current.status.value,
                target=target.value,
            )

        patch = self._build_patch(current, target, clean, acting_agent)

        try:
            written = await self._store.update(complaint_id, patch)
        except RemoteWriteError:
            logger.warning("Transition write rejected id=%s target=%s", complaint_id, target.value)
            raise

        logger.info("Complaint %s: %s -> %s", complaint_id, current.status.value, target.value)
        return Complaint.from_record(written)

    def _build_patch(
        self,
        current: Complaint,
        target: ComplaintStatus,
        reason: str,
        acting_agent: Agent | None,
    ) -> dict[str, Any]:
        patch: dict[str, Any] = {"status": target.value}

        if target == S.SUSPENDED:
            patch["suspension_reason"] = reason

        elif target == S.RESOLVED:
            assert acting_agent is not None
            resolved_at = self._clock()
            # Client clock may lag behind the store's created_at.
            if resolved_at < current.created_at:
                resolved_at = current.created_at
            patch["resolved_by"] = acting_agent.id
            patch["resolved_at"] = format_ts(resolved_at)
            patch["closure_reason"] = reason

        return patch

    async def _load(self, complaint_id: str) -> Complaint:
        record = await self._store.fetch_by_id(complaint_id)
        if record is None:
            raise RemoteReadError("Complaint not found", complaint_id=complaint_id)
        try:
            return Complaint.from_record(record)
        except (KeyError, ValueError) as exc:
            raise RemoteReadError("Store returned an unusable complaint record", complaint_id=complaint_id) from exc
