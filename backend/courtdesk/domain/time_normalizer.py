"""Canonical time handling for slot payloads.

The availability source and the booking form both hand over slot times in
whatever shape they happen to have: a bare ``"14:00"``, a full ``"14:00:00"``,
a combined ``"14:00-15:30"`` label, or a time buried in some other field.
Everything leaving this module is ``HH:MM:SS``.

Patterns are tried in a fixed order and the first one that matches wins:

1. a start field holding ``HH:MM`` or ``HH:MM:SS``;
2. a combined ``HH:MM-HH:MM`` range;
3. any ``HH:MM`` substring in any field, with the end derived from the duration.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping

from ..utils.time import to_local
from .errors import TimeFormatError

_TIME = r"([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?"
_TIME_RE = re.compile(rf"^{_TIME}$")
_RANGE_RE = re.compile(rf"^\s*{_TIME}\s*[-–]\s*{_TIME}\s*$")
_LOOSE_RE = re.compile(r"(?<!\d)([01]\d|2[0-3]):([0-5]\d)(?!\d)")

_START_KEYS = ("startTime", "start_time", "time", "value")
_END_KEYS = ("endTime", "end_time")
_RANGE_KEYS = ("formattedTimeRange", "formatted_time_range", "timeRange", "time_range", "label", "time", "value")


@dataclass(frozen=True)
class NormalizedTime:
    start_time: str
    end_time: str


def _canonical(hh: str, mm: str, ss: str | None) -> str:
    return f"{hh}:{mm}:{ss or '00'}"


def is_canonical(value: Any) -> bool:
    return isinstance(value, str) and _TIME_RE.match(value) is not None and len(value) == 8


def derive_end_time(start_time: str, duration_minutes: int) -> str:
    match = _TIME_RE.match(start_time)
    if match is None:
        raise TimeFormatError(f"not a time of day: {start_time!r}")
    hh, mm, ss = match.groups()
    total = int(hh) * 60 + int(mm) + int(duration_minutes)
    # Wraps past midnight without touching the booking date.
    return _canonical(f"{(total // 60) % 24:02d}", f"{total % 60:02d}", ss)


def canonical_time(value: Any) -> str:
    """A single time of day (``"14:00"``, ``"14:00:00"``, ``[14, 0]``) as ``HH:MM:SS``."""
    text = _as_text(value)
    match = _TIME_RE.match(text.strip()) if text is not None else None
    if match is None:
        raise TimeFormatError(f"not a time of day: {value!r}")
    return _canonical(*match.groups())


def short_time(value: str) -> str:
    """``"14:00:00"`` -> ``"14:00"`` for display."""
    return value[:5]


def to_iso_date(value: date | datetime | str) -> str:
    if isinstance(value, datetime):
        return to_local(value).date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value)[:10]).isoformat()
    except ValueError as exc:
        raise TimeFormatError(f"not a calendar date: {value!r}") from exc


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    # Java LocalTime arrives as [hh, mm] or [hh, mm, ss] from some endpoints.
    if isinstance(value, (list, tuple)) and 2 <= len(value) <= 3 and all(isinstance(v, int) for v in value):
        return ":".join(f"{v:02d}" for v in value)
    return None


def _fields(raw: Any) -> dict[str, str]:
    if isinstance(raw, str):
        return {"value": raw}
    if isinstance(raw, Mapping):
        items = raw.items()
    else:
        items = (
            (name, getattr(raw, name))
            for name in ("start_time", "end_time", "label")
            if getattr(raw, name, None) is not None
        )
    fields: dict[str, str] = {}
    for key, value in items:
        text = _as_text(value)
        if text is not None:
            fields[str(key)] = text
    return fields


def _first(fields: Mapping[str, str], keys: tuple[str, ...], pattern: re.Pattern[str]) -> re.Match[str] | None:
    for key in keys:
        value = fields.get(key)
        if value is None:
            continue
        match = pattern.match(value.strip())
        if match is not None:
            return match
    return None


def _explicit_end(fields: Mapping[str, str], start_time: str) -> str | None:
    match = _first(fields, _END_KEYS, _TIME_RE)
    if match is not None:
        return _canonical(*match.groups())
    ranged = _first(fields, _RANGE_KEYS, _RANGE_RE)
    if ranged is not None and _canonical(*ranged.groups()[:3]) == start_time:
        return _canonical(*ranged.groups()[3:])
    return None


def _derive(start_time: str, duration_minutes: int | None) -> str:
    if duration_minutes is None:
        raise TimeFormatError("end time missing and no duration to derive it from")
    return derive_end_time(start_time, duration_minutes)


def normalize(raw: Any, duration_minutes: int | None = None) -> NormalizedTime:
    """Return canonical start/end times for ``raw`` or raise ``TimeFormatError``."""
    fields = _fields(raw)

    start = _first(fields, _START_KEYS, _TIME_RE)
    if start is not None:
        start_time = _canonical(*start.groups())
        end_time = _explicit_end(fields, start_time) or _derive(start_time, duration_minutes)
        return NormalizedTime(start_time, end_time)

    ranged = _first(fields, _RANGE_KEYS, _RANGE_RE)
    if ranged is not None:
        groups = ranged.groups()
        return NormalizedTime(_canonical(*groups[:3]), _canonical(*groups[3:]))

    for value in fields.values():
        loose = _LOOSE_RE.search(value)
        if loose is not None:
            start_time = _canonical(loose.group(1), loose.group(2), None)
            return NormalizedTime(start_time, _derive(start_time, duration_minutes))

    raise TimeFormatError(f"no recognizable time in slot {raw!r}")
