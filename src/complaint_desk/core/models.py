# src/complaint_desk/core/models.py

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from .errors import ValidationError

logger = logging.getLogger(__name__)

HIGH_PRIORITY_THRESHOLD = 4
MEDIUM_PRIORITY_THRESHOLD = 2


class ComplaintStatus(StrEnum):
    """Complaint lifecycle status. RESOLVED is terminal."""

    PENDING = "Pending"
    PROCESSING = "Processing"
    SUSPENDED = "Suspended"
    RESOLVED = "Resolved"

    @classmethod
    def from_db(cls, raw: str | None) -> ComplaintStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            # Tolerate lower-case values written by older clients.
            for member in cls:
                if member.value.lower() == str(raw).strip().lower():
                    return member
            raise


class PriorityTier(StrEnum):
    NORMAL = "normal"
    MEDIUM = "medium"
    HIGH = "high"


def priority_tier(reminder_count: int) -> PriorityTier:
    """Display tier derived from the reminder count. Never persisted."""
    if reminder_count >= HIGH_PRIORITY_THRESHOLD:
        return PriorityTier.HIGH
    if reminder_count >= MEDIUM_PRIORITY_THRESHOLD:
        return PriorityTier.MEDIUM
    return PriorityTier.NORMAL


class ChangeKind(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """One change notification from the store: what happened to which record."""

    kind: ChangeKind
    record_id: str


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_ts(raw: Any) -> datetime | None:
    """Parse an ISO-8601 string (or pass a datetime through) into an aware UTC datetime."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        dt = raw
    else:
        dt = datetime.fromisoformat(str(raw).strip())
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_ts(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(UTC).isoformat()


# ---- Complaint types / dynamic fields ----


class FieldKind(StrEnum):
    TEXT = "text"
    NUMBER = "number"
    TEXTAREA = "textarea"
    DROPDOWN = "dropdown"
    DATE = "date"
    STATIC_TEXT = "static_text"
    SYSTEM = "system"


class FieldSection(StrEnum):
    BASIC = "basic"
    DETAILS = "details"


_DISPLAY_ONLY_KINDS = (FieldKind.STATIC_TEXT, FieldKind.SYSTEM)


@dataclass(frozen=True, slots=True)
class FieldDefinition:
    """
    One dynamic form field of a complaint type.

    The kind-specific payload is validated here, once:
    - dropdown fields must list at least one option,
    - static_text/system fields are display-only and can't be required.
    """

    id: str
    label: str
    kind: FieldKind = FieldKind.TEXT
    required: bool = False
    visible: bool = True
    section: FieldSection = FieldSection.DETAILS
    options: str = ""

    def __post_init__(self) -> None:
        if not str(self.id).strip():
            raise ValidationError("Field id is required")
        if not isinstance(self.kind, FieldKind):
            try:
                object.__setattr__(self, "kind", FieldKind(self.kind))
            except ValueError as exc:
                raise ValidationError(f"Unknown field kind: {self.kind!r}") from exc
        if not isinstance(self.section, FieldSection):
            try:
                object.__setattr__(self, "section", FieldSection(self.section))
            except ValueError as exc:
                raise ValidationError(f"Unknown field section: {self.section!r}") from exc

        if self.kind == FieldKind.DROPDOWN and not self.option_list():
            raise ValidationError(f"Dropdown field {self.id!r} needs at least one option")
        if self.kind in _DISPLAY_ONLY_KINDS and self.required:
            raise ValidationError(f"Field {self.id!r} of kind {self.kind.value} cannot be required")

    def option_list(self) -> list[str]:
        raw = (self.options or "").replace("\n", ",")
        return [p.strip() for p in raw.split(",") if p.strip()]

    @property
    def accepts_input(self) -> bool:
        return self.kind not in _DISPLAY_ONLY_KINDS

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> FieldDefinition:
        # Older rows store the kind under "type".
        kind = raw.get("kind") or raw.get("type") or FieldKind.TEXT.value
        return cls(
            id=str(raw.get("id", "")),
            label=str(raw.get("label") or ""),
            kind=kind,
            required=bool(raw.get("required", False)),
            visible=bool(raw.get("visible", True)),
            section=raw.get("section") or FieldSection.DETAILS.value,
            options=str(raw.get("options") or ""),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind.value,
            "required": self.required,
            "visible": self.visible,
            "section": self.section.value,
            "options": self.options,
        }


@dataclass(slots=True)
class ComplaintType:
    """A complaint category with an explicitly ordered list of field definitions."""

    id: str | None
    name: str
    instructions: str = ""
    fields: list[FieldDefinition] = field(default_factory=list)

    def field_ids(self) -> list[str]:
        return [f.id for f in self.fields]

    def field(self, field_id: str) -> FieldDefinition | None:
        key = str(field_id)
        for f in self.fields:
            if f.id == key:
                return f
        return None

    def label_for(self, field_id: str) -> str | None:
        f = self.field(field_id)
        return f.label if f is not None else None

    def add_field(self, definition: FieldDefinition) -> None:
        if self.field(definition.id) is not None:
            raise ValidationError(f"Duplicate field id: {definition.id!r}")
        self.fields.append(definition)

    def remove_field(self, field_id: str) -> None:
        self.fields = [f for f in self.fields if f.id != str(field_id)]

    def update_field(self, field_id: str, **changes: Any) -> FieldDefinition:
        for i, f in enumerate(self.fields):
            if f.id == str(field_id):
                # replace() re-runs __post_init__, so the new shape is validated too.
                updated = replace(f, **changes)
                self.fields[i] = updated
                return updated
        raise KeyError(field_id)

    def move(self, index: int, new_index: int) -> None:
        n = len(self.fields)
        if not (0 <= index < n) or not (0 <= new_index < n):
            raise IndexError(f"move({index}, {new_index}) out of range for {n} fields")
        item = self.fields.pop(index)
        self.fields.insert(new_index, item)

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> ComplaintType:
        fields_raw = raw.get("fields") or []
        if isinstance(fields_raw, str):
            fields_raw = json.loads(fields_raw or "[]")
        return cls(
            id=str(raw["id"]) if raw.get("id") is not None else None,
            name=str(raw.get("name") or ""),
            instructions=str(raw.get("instructions") or ""),
            fields=[FieldDefinition.from_record(f) for f in fields_raw if isinstance(f, dict)],
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "instructions": self.instructions,
            "fields": [f.to_record() for f in self.fields],
        }


# ---- Complaints ----


@dataclass(frozen=True, slots=True)
class ReminderLog:
    agent_name: str
    timestamp: datetime

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> ReminderLog:
        ts = parse_ts(raw.get("timestamp"))
        if ts is None:
            raise ValueError("reminder log without timestamp")
        return cls(agent_name=str(raw.get("agent_name") or "Unknown"), timestamp=ts)

    def to_record(self) -> dict[str, Any]:
        return {"agent_name": self.agent_name, "timestamp": format_ts(self.timestamp)}


@dataclass(frozen=True, slots=True)
class Agent:
    """The person acting on a complaint (submitting, resolving, reminding)."""

    id: str
    name: str


@dataclass(frozen=True, slots=True)
class Complaint:
    id: str
    customer_name: str
    customer_number: str
    type_id: str | None
    status: ComplaintStatus
    created_at: datetime
    agent_id: str | None = None

    form_data: dict[str, Any] = field(default_factory=dict)
    notes: str = ""

    suspension_reason: str | None = None
    closure_reason: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None

    reminder_count: int = 0
    reminder_logs: tuple[ReminderLog, ...] = ()

    # Joined, read-only display data.
    type_name: str | None = None
    type_fields: tuple[FieldDefinition, ...] = ()
    agent_name: str | None = None
    resolver_name: str | None = None

    @property
    def tier(self) -> PriorityTier:
        return priority_tier(self.reminder_count)

    @property
    def is_terminal(self) -> bool:
        return self.status == ComplaintStatus.RESOLVED

    def label_for(self, field_id: str) -> str | None:
        key = str(field_id)
        for f in self.type_fields:
            if f.id == key:
                return f.label
        return None

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> Complaint:
        """
        Build a Complaint from a store row.

        Joined relations may arrive either flattened (type_name, agent_name)
        or nested the way PostgREST embeds them ({"type": {"name", "fields"}}).
        """
        created_at = parse_ts(raw.get("created_at"))
        if created_at is None:
            raise ValueError(f"complaint {raw.get('id')!r} has no created_at")

        form_data = raw.get("form_data") or {}
        if isinstance(form_data, str):
            form_data = json.loads(form_data or "{}")

        logs_raw = raw.get("reminder_logs") or []
        if isinstance(logs_raw, str):
            logs_raw = json.loads(logs_raw or "[]")
        logs = tuple(ReminderLog.from_record(x) for x in logs_raw if isinstance(x, dict))

        type_obj = raw.get("type") if isinstance(raw.get("type"), dict) else {}
        agent_obj = raw.get("agent") if isinstance(raw.get("agent"), dict) else {}
        resolver_obj = raw.get("resolver") if isinstance(raw.get("resolver"), dict) else {}

        fields_raw = raw.get("type_fields")
        if fields_raw is None:
            fields_raw = type_obj.get("fields") or []
        if isinstance(fields_raw, str):
            fields_raw = json.loads(fields_raw or "[]")
        type_fields: list[FieldDefinition] = []
        for f in fields_raw:
            if not isinstance(f, dict):
                continue
            try:
                type_fields.append(FieldDefinition.from_record(f))
            except ValidationError:
                logger.warning("Skipping invalid field definition %r on complaint %s", f, raw.get("id"))

        count = raw.get("reminder_count")
        return cls(
            id=str(raw["id"]),
            customer_name=str(raw.get("customer_name") or ""),
            customer_number=str(raw.get("customer_number") or ""),
            type_id=str(raw["type_id"]) if raw.get("type_id") is not None else None,
            status=ComplaintStatus.from_db(raw.get("status")),
            created_at=created_at,
            agent_id=str(raw["agent_id"]) if raw.get("agent_id") is not None else None,
            form_data=dict(form_data),
            notes=str(raw.get("notes") or ""),
            suspension_reason=raw.get("suspension_reason"),
            closure_reason=raw.get("closure_reason"),
            resolved_by=str(raw["resolved_by"]) if raw.get("resolved_by") is not None else None,
            resolved_at=parse_ts(raw.get("resolved_at")),
            reminder_count=int(count) if count is not None else len(logs),
            reminder_logs=logs,
            type_name=raw.get("type_name") or type_obj.get("name"),
            type_fields=tuple(type_fields),
            agent_name=raw.get("agent_name") or agent_obj.get("name"),
            resolver_name=raw.get("resolver_name") or resolver_obj.get("name"),
        )

    def to_record(self) -> dict[str, Any]:
        """Store-facing columns only (joined display data is not written back)."""
        return {
            "id": self.id,
            "customer_name": self.customer_name,
            "customer_number": self.customer_number,
            "type_id": self.type_id,
            "form_data": dict(self.form_data),
            "notes": self.notes,
            "status": self.status.value,
            "suspension_reason": self.suspension_reason,
            "closure_reason": self.closure_reason,
            "resolved_by": self.resolved_by,
            "resolved_at": format_ts(self.resolved_at),
            "reminder_count": self.reminder_count,
            "reminder_logs": [log.to_record() for log in self.reminder_logs],
            "created_at": format_ts(self.created_at),
            "agent_id": self.agent_id,
        }
