"""Habit service helpers for streaks and scheduling rules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from ..models.habit import Frequency, Habit
from . import dates

# "You get the rest of the week to catch up." Not configurable.
MAKEUP_WINDOW_DAYS = 7


@dataclass(frozen=True, slots=True)
class StreakResult:
    """Current and best streak for one habit."""

    current_streak: int = 0
    best_streak: int = 0


def makeup_window(missed_date: str) -> tuple[str, str]:
    """Return the inclusive (first, last) dates a missed instance can be made up on."""

    return dates.add_days(missed_date, 1), dates.add_days(missed_date, MAKEUP_WINDOW_DAYS)


def in_makeup_window(candidate: str, missed_date: str) -> bool:
    return 1 <= dates.days_between(missed_date, candidate) <= MAKEUP_WINDOW_DAYS


def _normalize(values: Iterable[str], today: str) -> list[str]:
    """Local calendar dates up to and including today, deduplicated and ascending."""

    normalized = {dates.to_local_date(value) for value in values}
    return sorted(day for day in normalized if day <= today)


def _daily_streaks(days: list[str], today: str) -> tuple[int, int]:
    if not days:
        return 0, 0

    # Current streak: only alive if the latest completion is today or yesterday.
    current = 0
    latest = days[-1]
    if latest == today or latest == dates.add_days(today, -1):
        current = 1
        descending = days[::-1]
        for newer, older in zip(descending, descending[1:]):
            if dates.days_between(older, newer) == 1:
                current += 1
            else:
                break

    # Longest streak: sweep through sorted days, counting consecutive runs.
    longest = 0
    run = 0
    last_day: str | None = None
    for day in days:
        if last_day is not None and dates.days_between(last_day, day) == 1:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        last_day = day

    return current, max(longest, current)


def _allotted_days(start: str, end: str, weekdays: set[int]) -> list[str]:
    days: list[str] = []
    cursor = start
    while cursor <= end:
        if dates.day_of_week(cursor) in weekdays:
            days.append(cursor)
        cursor = dates.add_days(cursor, 1)
    return days


def _weekly_streaks(
    days: list[str],
    weekdays: set[int],
    alternatives: list[str],
    today: str,
) -> tuple[int, int]:
    completed = {day for day in days if dates.day_of_week(day) in weekdays}
    starts = list(completed) + [dates.add_days(alt, -MAKEUP_WINDOW_DAYS) for alt in alternatives]
    if not weekdays or not starts:
        return 0, 0

    schedule = _allotted_days(min(starts), today, weekdays)
    satisfied = {day for day in schedule if day in completed}

    # Each make-up date covers the most recent unsatisfied allotted day before it.
    for alt in alternatives:
        missed = [
            day
            for day in schedule
            if day not in satisfied and in_makeup_window(alt, day)
        ]
        if missed:
            satisfied.add(max(missed))

    if not schedule:
        return 0, 0

    # Today's slot is still open, so an unsatisfied today does not break anything.
    counted = schedule
    if counted[-1] == today and today not in satisfied:
        counted = counted[:-1]

    current = 0
    for day in reversed(counted):
        if day not in satisfied:
            break
        current += 1

    longest = 0
    run = 0
    for day in counted:
        run = run + 1 if day in satisfied else 0
        longest = max(longest, run)

    return current, max(longest, current)


def _monthly_streaks(days: list[str], today: str) -> tuple[int, int]:
    months = sorted({dates.month_key(day) for day in days})
    if not months:
        return 0, 0

    this_month = dates.month_key(today)
    current = 0
    if months[-1] in (this_month, this_month - 1):
        current = 1
        descending = months[::-1]
        for newer, older in zip(descending, descending[1:]):
            if newer - older == 1:
                current += 1
            else:
                break

    longest = 0
    run = 0
    last: int | None = None
    for month in months:
        run = run + 1 if last is not None and month - last == 1 else 1
        longest = max(longest, run)
        last = month

    return current, max(longest, current)


def compute_streaks(
    completed_dates: Iterable[str],
    frequency: Frequency | str = Frequency.DAILY,
    *,
    days_of_week: Sequence[int] = (),
    alternative_dates: Iterable[str] = (),
    today: str | None = None,
) -> StreakResult:
    """Return the current and best streak for a set of completed dates.

    Daily habits count consecutive days, weekly habits consecutive allotted
    weekdays (make-up dates fill a missed allotted day), monthly habits
    consecutive calendar months with at least one completion.
    """

    today = today or dates.today()
    days = _normalize(completed_dates, today)
    frequency = Frequency(frequency)

    if frequency is Frequency.WEEKLY:
        alternatives = _normalize(alternative_dates, today)
        current, best = _weekly_streaks(days, set(days_of_week), alternatives, today)
    elif frequency is Frequency.MONTHLY:
        current, best = _monthly_streaks(days, today)
    else:
        current, best = _daily_streaks(days, today)

    return StreakResult(current_streak=current, best_streak=max(best, current))


def streaks_for(habit: Habit, completed_dates: Iterable[str], *, today: str | None = None) -> StreakResult:
    """Compute streaks using the habit's own frequency rule and make-up dates."""

    return compute_streaks(
        completed_dates,
        habit.frequency,
        days_of_week=habit.days_of_week,
        alternative_dates=habit.alternative_completion_dates,
        today=today,
    )


def is_due_on(habit: Habit, date_str: str) -> bool:
    """Return True when the habit is scheduled on the given date."""

    if habit.frequency == Frequency.DAILY:
        return True
    if habit.frequency == Frequency.WEEKLY:
        return dates.day_of_week(date_str) in habit.days_of_week
    if habit.frequency == Frequency.MONTHLY:
        created_on = dates.parse_date(dates.to_local_date(habit.created_at))
        return dates.parse_date(date_str).day == created_on.day
    return False


def first_completion_in_month(completed_dates: Iterable[str], date_str: str) -> str | None:
    """Return the earliest completion in the calendar month of ``date_str``."""

    month = dates.month_key(date_str)
    in_month = sorted(day for day in completed_dates if dates.month_key(day) == month)
    return in_month[0] if in_month else None


def can_complete_on(habit: Habit, date_str: str, *, today: str | None = None) -> bool:
    """Whether the calendar lets a user mark ``date_str`` done for this habit.

    Only today is ever selectable. Weekly habits also need today to be an
    allotted day. For monthly habits the first completion of a calendar month
    locks that month.
    """

    today = today or dates.today()
    if date_str != today or date_str in habit.completed_dates:
        return False
    if habit.frequency == Frequency.WEEKLY:
        return (
            dates.day_of_week(date_str) in habit.days_of_week
            and date_str not in habit.alternative_completion_dates
        )
    if habit.frequency == Frequency.MONTHLY:
        return first_completion_in_month(habit.completed_dates, date_str) is None
    return True


def can_set_alternative_on(habit: Habit, date_str: str, *, missed_date: str) -> bool:
    """Whether ``date_str`` is offered as a make-up date for ``missed_date``."""

    if habit.frequency != Frequency.WEEKLY:
        return False
    return (
        dates.day_of_week(date_str) not in habit.days_of_week
        and date_str not in habit.completed_dates
        and date_str not in habit.alternative_completion_dates
        and in_makeup_window(date_str, missed_date)
    )


__all__ = [
    "MAKEUP_WINDOW_DAYS",
    "StreakResult",
    "can_complete_on",
    "can_set_alternative_on",
    "compute_streaks",
    "first_completion_in_month",
    "in_makeup_window",
    "is_due_on",
    "makeup_window",
    "streaks_for",
]
