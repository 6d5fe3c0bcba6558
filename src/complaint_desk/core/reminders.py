# src/complaint_desk/core/reminders.py

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from .errors import RemoteReadError
from .models import Agent, Complaint, PriorityTier, ReminderLog, priority_tier, utc_now
from .ports import ComplaintStore

logger = logging.getLogger(__name__)


class ReminderEscalationTracker:
    """
    Counts "customer called again" reminders on a complaint.

    increment() is a plain read-modify-write: it reads reminder_count and
    reminder_logs, appends one log entry and writes both fields back in a
    single update. There is no compare-and-swap, so two concurrent increments
    can lose one of them (last writer wins on the pair of fields).
    """

    def __init__(self, store: ComplaintStore, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def increment(self, complaint_id: str, acting_agent: Agent | None) -> Complaint:
        record = await self._store.fetch_by_id(complaint_id)
        if record is None:
            raise RemoteReadError("Complaint not found", complaint_id=complaint_id)
        try:
            current = Complaint.from_record(record)
        except (KeyError, ValueError) as exc:
            raise RemoteReadError("Store returned an unusable complaint record", complaint_id=complaint_id) from exc

        now = self._clock()
        if current.reminder_logs:
            latest = max(log.timestamp for log in current.reminder_logs)
            if now < latest:
                now = latest

        agent_name = (acting_agent.name if acting_agent is not None else "") or "Unknown"
        logs = [*current.reminder_logs, ReminderLog(agent_name=agent_name, timestamp=now)]

        # The stored count may have drifted from the log length in old rows; the
        # log is authoritative so the pair is written back consistent.
        new_count = len(logs)
        if new_count != current.reminder_count + 1:
            logger.warning(
                "Reminder count drift on %s: count=%s logs=%s",
                complaint_id,
                current.reminder_count,
                len(current.reminder_logs),
            )

        written = await self._store.update(
            complaint_id,
            {
                "reminder_count": new_count,
                "reminder_logs": [log.to_record() for log in logs],
            },
        )
        result = Complaint.from_record(written)
        logger.info("Reminder #%s on complaint %s by %s (tier=%s)", new_count, complaint_id, agent_name, result.tier.value)
        return result

    @staticmethod
    def tier(complaint: Complaint) -> PriorityTier:
        return priority_tier(complaint.reminder_count)
