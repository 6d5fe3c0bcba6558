# src/complaint_desk/core/duration.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .models import parse_ts

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR


@dataclass(frozen=True, slots=True)
class DurationLabels:
    unavailable: str
    less_than_minute: str
    day: tuple[str, str]
    hour: tuple[str, str]
    minute: tuple[str, str]
    conjunction: str

    def unit(self, forms: tuple[str, str], n: int) -> str:
        return f"{n} {forms[0] if n == 1 else forms[1]}"


ENGLISH = DurationLabels(
    unavailable="-",
    less_than_minute="less than a minute",
    day=("day", "days"),
    hour=("hour", "hours"),
    minute=("minute", "minutes"),
    conjunction=", ",
)

ARABIC = DurationLabels(
    unavailable="-",
    less_than_minute="أقل من دقيقة",
    day=("يوم", "يوم"),
    hour=("ساعة", "ساعة"),
    minute=("دقيقة", "دقيقة"),
    conjunction=" و ",
)

LABELS_BY_LOCALE = {"en": ENGLISH, "ar": ARABIC}


def labels_for(locale: str | None) -> DurationLabels:
    return LABELS_BY_LOCALE.get((locale or "en").strip().lower(), ENGLISH)


def duration(
    start: datetime | str | None,
    end: datetime | str | None,
    labels: DurationLabels = ENGLISH,
) -> str:
    """
    Human label for the time between two timestamps.

    Missing input or end < start -> labels.unavailable (never a negative duration).
    Under a minute -> labels.less_than_minute.
    Otherwise whole days / hours / minutes, zero parts omitted, largest first.
    """
    start_dt = _coerce(start)
    end_dt = _coerce(end)
    if start_dt is None or end_dt is None:
        return labels.unavailable

    elapsed = (end_dt - start_dt).total_seconds()
    if elapsed < 0:
        return labels.unavailable
    if elapsed < _MINUTE:
        return labels.less_than_minute

    secs = int(elapsed)
    days, rem = divmod(secs, _DAY)
    hours, rem = divmod(rem, _HOUR)
    minutes = rem // _MINUTE

    parts: list[str] = []
    if days > 0:
        parts.append(labels.unit(labels.day, days))
    if hours > 0:
        parts.append(labels.unit(labels.hour, hours))
    if minutes > 0:
        parts.append(labels.unit(labels.minute, minutes))
    return labels.conjunction.join(parts)


def _coerce(value: Any) -> datetime | None:
    try:
        return parse_ts(value)
    except ValueError:
        return None
