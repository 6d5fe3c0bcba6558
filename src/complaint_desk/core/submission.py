# src/complaint_desk/core/submission.py

from __future__ import annotations

import logging
from typing import Any

from .errors import ValidationError
from .models import Agent, ComplaintStatus, ComplaintType
from .ports import ComplaintStore, Record

logger = logging.getLogger(__name__)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_submission(
    complaint_type: ComplaintType,
    *,
    customer_name: str,
    customer_number: str,
    form_data: dict[str, Any],
) -> None:
    if _blank(customer_name) or _blank(customer_number):
        raise ValidationError("Customer name and number are required")
    if complaint_type.id is None:
        raise ValidationError("Complaint type is required")

    for f in complaint_type.fields:
        if not f.required or not f.visible or not f.accepts_input:
            continue
        if _blank(form_data.get(f.id)):
            raise ValidationError(f"Required: {f.label or f.id}")


def build_submission(
    complaint_type: ComplaintType,
    agent: Agent,
    *,
    customer_name: str,
    customer_number: str,
    form_data: dict[str, Any] | None = None,
) -> Record:
    data = dict(form_data or {})
    validate_submission(
        complaint_type,
        customer_name=customer_name,
        customer_number=customer_number,
        form_data=data,
    )
    return {
        "customer_name": customer_name.strip(),
        "customer_number": customer_number.strip(),
        "type_id": complaint_type.id,
        "form_data": data,
        "notes": str(data.get("notes") or ""),
        "agent_id": agent.id,
        "status": ComplaintStatus.PENDING.value,
        "reminder_count": 0,
        "reminder_logs": [],
    }


async def submit_complaint(
    store: ComplaintStore,
    complaint_type: ComplaintType,
    agent: Agent,
    *,
    customer_name: str,
    customer_number: str,
    form_data: dict[str, Any] | None = None,
) -> Record:
    """
    Validate and insert a new complaint (status Pending, no reminders).

    The local cache picks the complaint up from the store's INSERT event.
    """
    record = build_submission(
        complaint_type,
        agent,
        customer_name=customer_name,
        customer_number=customer_number,
        form_data=form_data,
    )
    written = await store.insert(record)
    logger.info("Complaint submitted id=%s type=%s agent=%s", written.get("id"), complaint_type.id, agent.id)
    return written
