"""
modules/planning/time_range.py
--------------------------------
Time-range extraction from natural language plus small time helpers.

parse_time_range():
  1. Two or more explicit clock times ("2pm", "14:00", "9:30 am") → first two.
     pm adds 12h unless the hour is 12; am turns 12 into 0.  start < end is
     NOT checked here.
  2. Otherwise the first named period found, in lexicon order.
  3. Otherwise None.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Optional

from schemas.planner import TimeRange

_CLOCK_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b", re.IGNORECASE)

# Order matters: first substring match wins ("dinner" never reaches "night").
NAMED_PERIODS: list[tuple[str, str, str]] = [
    ("morning",   "08:00", "12:00"),
    ("afternoon", "12:00", "17:00"),
    ("evening",   "17:00", "21:00"),
    ("night",     "19:00", "23:00"),
    ("lunch",     "11:30", "14:00"),
    ("dinner",    "18:00", "21:00"),
]


def extract_clock_times(text: str) -> list[str]:
    """Every clock-time token in ``text`` as HH:mm, in order of appearance."""
    times: list[str] = []
    for match in _CLOCK_RE.finditer(text.lower()):
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)
        period = match.group(3)
        if period == "pm" and hours != 12:
            hours += 12
        elif period == "am" and hours == 12:
            hours = 0
        if hours > 23 or minutes > 59:
            continue
        times.append(f"{hours:02d}:{minutes:02d}")
    return times


def parse_time_range(text: str) -> Optional[TimeRange]:
    times = extract_clock_times(text)
    if len(times) >= 2:
        return TimeRange(start=times[0], end=times[1])

    lowered = text.lower()
    for word, start, end in NAMED_PERIODS:
        if word in lowered:
            return TimeRange(start=start, end=end)
    return None


# ── helpers ───────────────────────────────────────────────────────────────────

def duration_minutes(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60.0


def format_hm(ts: datetime) -> str:
    return ts.strftime("%H:%M")


def at_time(day: date, hm: str) -> datetime:
    """Combine a date with HH:mm into a naive wall-clock datetime."""
    hours, minutes = (int(p) for p in hm.split(":"))
    return datetime(day.year, day.month, day.day, hours, minutes)


def date_range(start: date, end: date) -> list[date]:
    """Dates from start to end, inclusive."""
    return [start + timedelta(days=n) for n in range((end - start).days + 1)]
