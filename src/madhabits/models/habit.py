"""Habit tracking data structures."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

PROVISIONAL_PREFIX = "temp-"


class Frequency(str, Enum):
    """How often a habit is due."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def is_provisional(identifier: str) -> bool:
    """Return True for ids generated locally and not yet confirmed remotely."""

    return identifier.startswith(PROVISIONAL_PREFIX)


class Habit(SQLModel):
    """A recurring commitment.

    Instances are treated as values: the registry swaps in copies made with
    ``model_copy(update=...)`` and never mutates a stored habit in place.
    ``streak``, ``best_streak`` and ``completed_dates`` are derived from the
    completion ledger.
    """

    id: str
    user_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    frequency: Frequency = Frequency.DAILY
    days_of_week: list[int] = Field(default_factory=list)
    streak: int = 0
    best_streak: int = 0
    completed_dates: list[str] = Field(default_factory=list)
    alternative_completion_dates: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str

    @property
    def is_provisional(self) -> bool:
        return is_provisional(self.id)


class CompletionRecord(SQLModel):
    """One entry per (habit, calendar date)."""

    id: str
    habit_id: str
    date: str
    completed: bool = True
    note: Optional[str] = None

    @property
    def is_provisional(self) -> bool:
        return is_provisional(self.id)


__all__ = [
    "CompletionRecord",
    "Frequency",
    "Habit",
    "PROVISIONAL_PREFIX",
    "is_provisional",
]
