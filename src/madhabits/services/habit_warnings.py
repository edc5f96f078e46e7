"""Missed weekly habit detection for make-up prompts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from ..infra.repositories.ledger import CompletionLedger
from ..infra.repositories.registry import HabitRegistry
from ..models.habit import Frequency, Habit
from . import dates
from .habits import makeup_window

logger = logging.getLogger("madhabits.warnings")


@dataclass(frozen=True, slots=True)
class MissedInstance:
    """A weekly habit whose allotted day yesterday went by without a completion."""

    habit: Habit
    missed_date: str

    @property
    def makeup_window(self) -> tuple[str, str]:
        return makeup_window(self.missed_date)


def find_missed_instances(
    habits: Iterable[Habit],
    ledger: CompletionLedger,
    *,
    today: str | None = None,
) -> list[MissedInstance]:
    """Return weekly habits missed yesterday that have no make-up date yet.

    Pure: reads the habits and the ledger, changes neither.
    """

    today = today or dates.today()
    missed_date = dates.add_days(today, -1)
    weekday = dates.day_of_week(missed_date)

    missed: list[MissedInstance] = []
    for habit in habits:
        if habit.frequency != Frequency.WEEKLY or not habit.days_of_week:
            continue
        if weekday not in habit.days_of_week:
            continue
        if ledger.is_completed(habit.id, missed_date):
            continue
        if missed_date in habit.alternative_completion_dates:
            continue
        missed.append(MissedInstance(habit=habit, missed_date=missed_date))
    return missed


class WarningEvaluator:
    """Re-scans only when the registry, the ledger or the calendar day changed."""

    def __init__(self, registry: HabitRegistry, ledger: CompletionLedger, *, clock=datetime.now):
        self.registry = registry
        self.ledger = ledger
        self.clock = clock
        self._key: tuple[int, int, str] | None = None
        self._missed: list[MissedInstance] = []

    def evaluate(self) -> list[MissedInstance]:
        today = dates.today(self.clock())
        key = (self.registry.version, self.ledger.version, today)
        if key != self._key:
            self._missed = find_missed_instances(self.registry.snapshot(), self.ledger, today=today)
            self._key = key
            if self._missed:
                logger.info(
                    "Missed weekly habits detected",
                    extra={"habits": [item.habit.id for item in self._missed]},
                )
        return list(self._missed)


__all__ = ["MissedInstance", "WarningEvaluator", "find_missed_instances"]
