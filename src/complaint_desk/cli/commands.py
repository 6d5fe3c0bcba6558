# src/complaint_desk/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Coroutine
from datetime import date, timezone
from typing import Any, cast

from ..core.duration import duration
from ..core.errors import ComplaintDeskError
from ..core.filters import StatusFilter, filter_complaints
from ..core.models import Complaint, ComplaintStatus, PriorityTier
from ..core.state import AppState
from ..core.state_machine import allowed_targets
from ..core.submission import submit_complaint
from ..reporting.export import default_export_name, export_rows, write_csv
from ..reporting.share import share_text

Runner = Callable[[Coroutine[Any, Any, Any]], Any]
CommandEmitter = Callable[[str], None]
CommandHandler3 = Callable[[AppState, list[str], Runner], str]
CommandHandler4 = Callable[[AppState, list[str], Runner, CommandEmitter | None], str]
CommandHandler = CommandHandler3 | CommandHandler4

logger = logging.getLogger(__name__)

_TIER_MARK = {PriorityTier.HIGH: "!!", PriorityTier.MEDIUM: "! ", PriorityTier.NORMAL: "  "}


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /list, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        run: Runner,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Domain errors (validation, illegal transition, store failures) become
        the reply text; anything else propagates to the connector.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 4

        try:
            if nparams >= 4:
                h4 = cast(CommandHandler4, handler)
                return h4(state, args, run, emit)
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, run)
        except ComplaintDeskError as exc:
            logger.info("/%s failed: %s", name, exc)
            return f"{type(exc).__name__}: {exc}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _resolve(state: AppState, prefix: str) -> Complaint | None:
    """Find a cached complaint by full id or unique id prefix."""
    exact = state.reconciler.get(prefix)
    if exact is not None:
        return exact
    hits = [c for c in state.reconciler.snapshot() if c.id.startswith(prefix)]
    return hits[0] if len(hits) == 1 else None


def _row(state: AppState, c: Complaint) -> str:
    mark = _TIER_MARK[c.tier]
    # UTC day, the same day /list --date matches on.
    created = c.created_at.astimezone(timezone.utc).strftime("%Y-%m-%d")
    type_name = c.type_name or "-"
    return f"{mark} #{c.id[:8]}  {created}  {c.status.value:<10}  {c.customer_name} ({c.customer_number})  [{type_name}]"


async def _after_write(state: AppState) -> None:
    # Live channel: wait for the event round-trip. Otherwise fall back to a full reload.
    if state.reconciler.live:
        await state.reconciler.drain()
    else:
        await state.reconciler.full_reload()


def _parse_list_args(args: list[str]) -> tuple[str, str | None, str | None]:
    search: list[str] = []
    status: str | None = None
    day: str | None = None
    it = iter(args)
    for a in it:
        if a == "--status":
            status = next(it, "All")
        elif a == "--date":
            day = next(it, "")
            if day in ("-", "\"\""):
                day = ""
        else:
            search.append(a)
    return " ".join(search), status, day


# ---- commands ----


def cmd_help(state: AppState, args: list[str], run: Runner) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], run: Runner) -> str:
    rec = state.reconciler
    f = state.filters
    return (
        "Status:\n"
        f"  Acting as: {state.agent.name} ({state.agent.id})\n"
        f"  Cached complaints: {len(rec)}\n"
        f"  Live updates: {'ON' if rec.live else 'OFF (use /reload)'}\n"
        f"  Filters: search={f.search!r} status={f.status.value} date={f.day or '-'}"
    )


def cmd_list(state: AppState, args: list[str], run: Runner) -> str:
    """
    /list                          -> list with the current filters
    /list ahmed --status Pending   -> set filters, then list
    /list --status HighPriority
    /list --date 2024-01-01
    /list --status All --date -    -> reset
    """
    if args:
        search, status, day = _parse_list_args(args)
        try:
            new_status = StatusFilter.parse(status) if status is not None else state.filters.status
            if day:
                date.fromisoformat(day)
        except ValueError as exc:
            return f"Bad filter: {exc}"
        state.filters.search = search
        state.filters.status = new_status
        if day is not None:
            state.filters.day = day

    f = state.filters
    visible = filter_complaints(state.reconciler.snapshot(), f.search, f.status, f.day)
    if not visible:
        return "No complaints found."
    lines = [f"{len(visible)} complaint(s):"]
    lines.extend(_row(state, c) for c in visible)
    return "\n".join(lines)


def cmd_show(state: AppState, args: list[str], run: Runner) -> str:
    if not args:
        return "Usage: /show ID"
    c = _resolve(state, args[0])
    if c is None:
        return f"No cached complaint matches {args[0]!r}."

    lines = [
        f"Complaint #{c.id}",
        f"  Customer: {c.customer_name} ({c.customer_number})",
        f"  Type: {c.type_name or '-'}",
        f"  Status: {c.status.value}",
        f"  Raised by: {c.agent_name or c.agent_id or '-'}",
        f"  Created: {c.created_at.astimezone():%Y-%m-%d %H:%M}",
        f"  Reminders: {c.reminder_count} (priority {c.tier.value})",
    ]
    if c.suspension_reason and c.status == ComplaintStatus.SUSPENDED:
        lines.append(f"  Suspension reason: {c.suspension_reason}")
    if c.status == ComplaintStatus.RESOLVED:
        lines.append(f"  Closed by: {c.resolver_name or c.resolved_by or '-'}")
        lines.append(f"  Closure reason: {c.closure_reason or '-'}")
        lines.append(f"  Time to close: {duration(c.created_at, c.resolved_at, state.duration_labels)}")
    for field_id, value in c.form_data.items():
        lines.append(f"  {c.label_for(field_id) or field_id}: {value}")
    for log in c.reminder_logs:
        lines.append(f"  - reminder by {log.agent_name} at {log.timestamp.astimezone():%Y-%m-%d %H:%M}")
    targets = sorted(t.value for t in allowed_targets(c.status))
    lines.append(f"  Actions: {', '.join(targets) if targets else 'none (closed)'}")
    return "\n".join(lines)


def _transition(state: AppState, args: list[str], run: Runner, target: ComplaintStatus, name: str) -> str:
    if not args:
        return f"Usage: /{name} ID" + (" REASON..." if target != ComplaintStatus.PROCESSING else "")
    c = _resolve(state, args[0])
    complaint_id = c.id if c is not None else args[0]
    reason = " ".join(args[1:]) or None

    async def go() -> Complaint:
        written = await state.state_machine.transition(complaint_id, target, reason, state.agent)
        await _after_write(state)
        return written

    written = run(go())
    return f"Complaint #{written.id[:8]} is now {written.status.value}."


def cmd_process(state: AppState, args: list[str], run: Runner) -> str:
    return _transition(state, args, run, ComplaintStatus.PROCESSING, "process")


def cmd_suspend(state: AppState, args: list[str], run: Runner) -> str:
    return _transition(state, args, run, ComplaintStatus.SUSPENDED, "suspend")


def cmd_resolve(state: AppState, args: list[str], run: Runner) -> str:
    return _transition(state, args, run, ComplaintStatus.RESOLVED, "resolve")


def cmd_remind(state: AppState, args: list[str], run: Runner) -> str:
    if not args:
        return "Usage: /remind ID"
    c = _resolve(state, args[0])
    complaint_id = c.id if c is not None else args[0]

    async def go() -> Complaint:
        written = await state.reminders.increment(complaint_id, state.agent)
        await _after_write(state)
        return written

    written = run(go())
    return f"Reminder recorded: #{written.id[:8]} now has {written.reminder_count} (priority {written.tier.value})."


def cmd_reload(state: AppState, args: list[str], run: Runner, emit: CommandEmitter | None = None) -> str:
    if emit is not None:
        emit(f"Reloading complaints ({len(state.reconciler.snapshot())} cached)...")
    snapshot = run(state.reconciler.full_reload())
    return f"Reloaded {len(snapshot)} complaint(s)."


def cmd_types(state: AppState, args: list[str], run: Runner) -> str:
    types = run(state.catalogue.load())
    if not types:
        return "No complaint types defined."
    lines = ["Complaint types:"]
    for t in types:
        fields = ", ".join(f"{f.id}{'*' if f.required else ''}:{f.kind.value}" for f in t.fields) or "-"
        lines.append(f"  {t.id}  {t.name}  [{fields}]")
    return "\n".join(lines)


def cmd_submit(state: AppState, args: list[str], run: Runner) -> str:
    """
    /submit TYPE_ID NAME NUMBER [field=value ...]
    Use underscores for spaces in NAME and values.
    """
    if len(args) < 3:
        return "Usage: /submit TYPE_ID NAME NUMBER [field=value ...]"
    complaint_type = state.catalogue.get(args[0])
    if complaint_type is None:
        return f"Unknown complaint type {args[0]!r}. Use /types."

    form_data: dict[str, Any] = {}
    for pair in args[3:]:
        key, sep, value = pair.partition("=")
        if sep:
            form_data[key] = value.replace("_", " ")

    async def go() -> dict[str, Any]:
        written = await submit_complaint(
            state.store,
            complaint_type,
            state.agent,
            customer_name=args[1].replace("_", " "),
            customer_number=args[2],
            form_data=form_data,
        )
        await _after_write(state)
        return written

    written = run(go())
    return f"Complaint submitted: #{str(written.get('id'))[:8]}"


def cmd_export(state: AppState, args: list[str], run: Runner, emit: CommandEmitter | None = None) -> str:
    f = state.filters
    visible = filter_complaints(state.reconciler.snapshot(), f.search, f.status, f.day)
    if not visible:
        return "No complaints found."
    columns, rows = export_rows(visible, state.catalogue.types, labels=state.duration_labels)
    target = args[0] if args else str(state.settings.data_dir / default_export_name())  # type: ignore[attr-defined]
    if emit is not None:
        emit(f"Writing {len(rows)} row(s) x {len(columns)} column(s) to {target}...")
    path = write_csv(rows, columns, target)
    return f"Exported {len(rows)} complaint(s) to {path}"


def cmd_share(state: AppState, args: list[str], run: Runner) -> str:
    if not args:
        return "Usage: /share ID"
    c = _resolve(state, args[0])
    if c is None:
        return f"No cached complaint matches {args[0]!r}."
    return share_text(c)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show connection, cache size and filters.")
registry.register(
    "list",
    cmd_list,
    help_text="List complaints: /list [search] [--status S] [--date YYYY-MM-DD].",
    aliases=["ls"],
)
registry.register("show", cmd_show, help_text="Show one complaint: /show ID.")
registry.register("process", cmd_process, help_text="Start processing: /process ID.")
registry.register("suspend", cmd_suspend, help_text="Suspend: /suspend ID REASON...")
registry.register("resolve", cmd_resolve, help_text="Resolve (final): /resolve ID REASON...")
registry.register("remind", cmd_remind, help_text="Record a customer reminder: /remind ID.")
registry.register("reload", cmd_reload, help_text="Reload all complaints from the store.")
registry.register("types", cmd_types, help_text="List complaint types and their fields.")
registry.register("submit", cmd_submit, help_text="Submit: /submit TYPE_ID NAME NUMBER [field=value ...].")
registry.register("export", cmd_export, help_text="Export the filtered list to CSV: /export [path].")
registry.register("share", cmd_share, help_text="Text block for sharing: /share ID.")
