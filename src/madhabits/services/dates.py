"""Local calendar date helpers.

Every date the engine stores or compares is a local ``YYYY-MM-DD`` string
built from year/month/day. Nothing here goes through a UTC serialization of a
datetime, so "today" never moves a day forward for users west of UTC late in
the evening.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Union

DateLike = Union[str, date, datetime]

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _local_now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now()


def _format(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def is_iso_date(value: object) -> bool:
    """Return True when value is a well-formed, real ``YYYY-MM-DD`` string."""

    if not isinstance(value, str) or not _ISO_DATE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string into a date."""

    if not is_iso_date(value):
        raise ValueError(f"Expected a YYYY-MM-DD date, got {value!r}")
    year, month, day = (int(part) for part in value.split("-"))
    return date(year, month, day)


def to_local_date(value: DateLike) -> str:
    """Normalize a date, datetime or timestamp string to a local calendar date.

    Aware datetimes (and timestamp strings carrying an offset) are converted to
    the machine's local time zone first; naive ones are taken as local already.
    """

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return _format(value.date())
    if isinstance(value, date):
        return _format(value)
    text = value.strip()
    if is_iso_date(text):
        return text
    stamp = datetime.fromisoformat(text.replace("Z", "+00:00"))
    return to_local_date(stamp)


def today(now: datetime | None = None) -> str:
    """Return today's local date. An aware ``now`` is read in its own zone."""

    return _format(_local_now(now).date())


def yesterday(now: datetime | None = None) -> str:
    return add_days(today(now), -1)


def day_of_week(date_str: str) -> int:
    """Return 0-6 with Sunday first."""

    return (parse_date(date_str).weekday() + 1) % 7


def add_days(date_str: str, n: int) -> str:
    return _format(parse_date(date_str) + timedelta(days=n))


def days_between(a: str, b: str) -> int:
    """Return the whole number of days from ``a`` to ``b`` (negative if b < a)."""

    return (parse_date(b) - parse_date(a)).days


def month_key(date_str: str) -> int:
    """Return a month ordinal so that consecutive months differ by exactly 1."""

    parsed = parse_date(date_str)
    return parsed.year * 12 + (parsed.month - 1)


def now_iso(now: datetime | None = None) -> str:
    """Return an ISO timestamp for created/updated/sync markers."""

    return _local_now(now).isoformat(timespec="seconds")


__all__ = [
    "add_days",
    "day_of_week",
    "days_between",
    "is_iso_date",
    "month_key",
    "now_iso",
    "parse_date",
    "to_local_date",
    "today",
    "yesterday",
]
