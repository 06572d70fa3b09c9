#!/usr/bin/env python3
"""
Daily time-window expressions used by ``match-calendar``.

Syntax::

    [<weekdays>] <start>-<end>

    mon..fri 8-17:30
    sat,sun 0-24
    10:00-12:00

Weekdays are a comma separated list of names or ``a..b`` ranges (ranges may
wrap, e.g. ``fri..mon``). Times are ``H`` or ``H:MM``. The window is
half-open: ``start <= t < end``. Without weekdays the window applies to
every day.
"""

import re
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import FrozenSet, Optional, Union

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
_FULL_NAMES = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)

_TIME_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?$")

Timestamp = Union[datetime, int, float]


class CalendarSyntaxError(ValueError):
    """Raised for malformed calendar expressions."""
    pass


def _parse_weekday(token: str, expr: str) -> int:
    token = token.strip().lower()
    for index, day in enumerate(WEEKDAYS):
        if token in (day, _FULL_NAMES[index]):
            return index
    raise CalendarSyntaxError(f"invalid weekday '{token}' in '{expr}'")


def _parse_weekdays(days_text: str, expr: str) -> FrozenSet[int]:
    days = set()
    for part in days_text.split(","):
        if not part:
            raise CalendarSyntaxError(f"empty weekday in '{expr}'")
        if ".." in part:
            first, _, last = part.partition("..")
            start = _parse_weekday(first, expr)
            end = _parse_weekday(last, expr)
            day = start
            while True:
                days.add(day)
                if day == end:
                    break
                day = (day + 1) % 7
        else:
            days.add(_parse_weekday(part, expr))
    return frozenset(days)


def _parse_time(text: str, expr: str, allow_end_of_day: bool) -> int:
    """Return minutes since midnight."""
    match = _TIME_RE.match(text.strip())
    if not match:
        raise CalendarSyntaxError(f"invalid time '{text}' in '{expr}'")
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if minute > 59:
        raise CalendarSyntaxError(f"invalid minute in '{text}' ('{expr}')")
    if hour == 24 and minute == 0 and allow_end_of_day:
        return 24 * 60
    if hour > 23:
        raise CalendarSyntaxError(f"invalid hour in '{text}' ('{expr}')")
    return hour * 60 + minute


@dataclass(frozen=True)
class DailyDuration:
    """A parsed daily time window, optionally restricted to weekdays."""

    start_minute: int
    end_minute: int
    weekdays: Optional[FrozenSet[int]] = None

    @classmethod
    def parse(cls, expr: str) -> "DailyDuration":
        if expr is not None and not isinstance(expr, str):
            raise CalendarSyntaxError(f"invalid calendar expression {expr!r}: expected a string")
        text = (expr or "").strip()
        if not text:
            raise CalendarSyntaxError("empty calendar expression")

        parts = text.split()
        if len(parts) > 2:
            raise CalendarSyntaxError(f"unexpected tokens in '{expr}'")

        weekdays = None
        if len(parts) == 2:
            weekdays = _parse_weekdays(parts[0], expr)
        window = parts[-1]

        if window.count("-") != 1:
            raise CalendarSyntaxError(f"expected '<start>-<end>' in '{expr}'")
        start_text, end_text = window.split("-")
        start = _parse_time(start_text, expr, allow_end_of_day=False)
        end = _parse_time(end_text, expr, allow_end_of_day=True)
        if start >= end:
            raise CalendarSyntaxError(f"end time must be after start time in '{expr}'")

        return cls(start_minute=start, end_minute=end, weekdays=weekdays)

    def contains(self, moment: datetime) -> bool:
        """Check whether a (wall-clock) datetime falls inside the window."""
        if self.weekdays is not None and moment.weekday() not in self.weekdays:
            return False
        minute_of_day = moment.hour * 60 + moment.minute
        return self.start_minute <= minute_of_day < self.end_minute


def to_wall_clock(timestamp: Timestamp, tz: Optional[tzinfo] = None) -> datetime:
    """Convert an event timestamp into the wall-clock time windows are defined in.

    Naive datetimes are taken as already being wall-clock time. Aware
    datetimes and epoch seconds are converted to ``tz`` (system local time
    when ``tz`` is None).
    """
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            return timestamp
        return timestamp.astimezone(tz)
    if tz is None:
        return datetime.fromtimestamp(timestamp)
    return datetime.fromtimestamp(timestamp, tz)
