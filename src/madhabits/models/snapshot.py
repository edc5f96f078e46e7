"""Tables backing the persisted local snapshot (and the SQL remote store)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from .habit import CompletionRecord, Frequency, Habit


class HabitRow(SQLModel, table=True):
    """Stored form of a Habit."""

    __tablename__: ClassVar[str] = "habit"

    id: str = Field(primary_key=True, max_length=64)
    user_id: Optional[str] = Field(default=None, index=True, max_length=64)
    name: str = Field(nullable=False, max_length=80)
    description: Optional[str] = Field(default=None, max_length=255)
    icon: Optional[str] = Field(default=None, max_length=16)
    color: Optional[str] = Field(default=None, max_length=16)
    frequency: str = Field(default=Frequency.DAILY.value, max_length=16)
    days_of_week: list[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    streak: int = Field(default=0, nullable=False)
    best_streak: int = Field(default=0, nullable=False)
    completed_dates: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    alternative_completion_dates: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    created_at: str = Field(nullable=False, max_length=40)
    updated_at: str = Field(nullable=False, max_length=40)

    @classmethod
    def from_habit(cls, habit: Habit) -> "HabitRow":
        data = habit.model_dump()
        data["frequency"] = Frequency(habit.frequency).value
        data["days_of_week"] = list(habit.days_of_week)
        data["completed_dates"] = list(habit.completed_dates)
        data["alternative_completion_dates"] = list(habit.alternative_completion_dates)
        return cls(**data)

    def to_habit(self) -> Habit:
        return Habit(
            id=self.id,
            user_id=self.user_id,
            name=self.name,
            description=self.description,
            icon=self.icon,
            color=self.color,
            frequency=Frequency(self.frequency),
            days_of_week=list(self.days_of_week or []),
            streak=self.streak,
            best_streak=self.best_streak,
            completed_dates=list(self.completed_dates or []),
            alternative_completion_dates=list(self.alternative_completion_dates or []),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class CompletionRow(SQLModel, table=True):
    """Stored form of a CompletionRecord."""

    __tablename__: ClassVar[str] = "habit_completion"

    id: str = Field(primary_key=True, max_length=64)
    habit_id: str = Field(nullable=False, index=True, max_length=64)
    date: str = Field(nullable=False, index=True, max_length=10)
    completed: bool = Field(default=True, nullable=False)
    note: Optional[str] = Field(default=None)

    @classmethod
    def from_record(cls, record: CompletionRecord) -> "CompletionRow":
        return cls(**record.model_dump())

    def to_record(self) -> CompletionRecord:
        return CompletionRecord(
            id=self.id,
            habit_id=self.habit_id,
            date=self.date,
            completed=self.completed,
            note=self.note,
        )


class PendingOperationRow(SQLModel, table=True):
    """An offline mutation waiting to be replayed, in queue order."""

    __tablename__: ClassVar[str] = "pending_operation"

    seq: Optional[int] = Field(default=None, primary_key=True)
    kind: str = Field(nullable=False, max_length=16)
    habit_id: str = Field(nullable=False, max_length=64)
    payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    queued_at: str = Field(nullable=False, max_length=40)


@dataclass(frozen=True)
class PendingOperation:
    """Offline mutation queued for replay against the remote store."""

    kind: str
    habit_id: str
    payload: dict[str, Any]
    queued_at: str

    def with_habit_id(self, habit_id: str) -> "PendingOperation":
        return PendingOperation(self.kind, habit_id, dict(self.payload), self.queued_at)


@dataclass
class LocalSnapshot:
    """Everything that has to survive a process restart."""

    habits: list[Habit] = field(default_factory=list)
    records: list[CompletionRecord] = field(default_factory=list)
    last_sync_at: Optional[str] = None
    pending: list[PendingOperation] = field(default_factory=list)


__all__ = [
    "CompletionRow",
    "HabitRow",
    "LocalSnapshot",
    "PendingOperation",
    "PendingOperationRow",
]
