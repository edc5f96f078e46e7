"""Pytest configuration and shared fixtures for MadHabits tests.

This module provides a fixed clock, an in-memory remote habit store with
failure injection, engine fixtures wired together the way the app context does
it, and SQLite-backed session factories that never touch the real data dir.
"""

from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timedelta
from typing import Any, Optional

import pytest

from madhabits.config import BaseConfig
from madhabits.errors import NotFound
from madhabits.infra.database import bootstrap_database, create_session_factory
from madhabits.infra.repositories import (
    CompletionLedger,
    HabitRegistry,
    SQLModelSnapshotRepository,
)
from madhabits.infra.repositories.registry import check_schedule, normalize_habit_fields
from madhabits.models.habit import CompletionRecord, Frequency, Habit
from madhabits.services import dates
from madhabits.services.habits import streaks_for
from madhabits.services.sync import SyncReconciler

# Friday 2024-03-15, mid-morning local time.
FIXED_NOW = datetime(2024, 3, 15, 9, 30)
TODAY = "2024-03-15"
USER_ID = "user-1"


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Remote store double
# =============================================================================


class FakeRemoteHabitStore:
    """In-memory remote store.

    ``fail(method)`` makes the next call to that method raise; ``hold(method)``
    returns an event the call waits on before answering, which lets a test
    observe the optimistic state while a request is in flight. Every call is
    appended to ``calls`` as ``(method, *args)``.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.habits: dict[str, Habit] = {}
        self.records: dict[tuple[str, str], CompletionRecord] = {}
        self.calls: list[tuple[Any, ...]] = []
        self._failures: dict[str, Exception] = {}
        self._gates: dict[str, asyncio.Event] = {}
        self._ids = itertools.count(1)

    # Test controls

    def fail(self, method: str, exc: Optional[Exception] = None) -> None:
        self._failures[method] = exc or ConnectionError(f"{method} unavailable")

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[method] = gate
        return gate

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == method]

    def seed(self, habit: Habit, completed: tuple[str, ...] = ()) -> Habit:
        for day in completed:
            self.records[(habit.id, day)] = CompletionRecord(
                id=f"rec-{next(self._ids)}", habit_id=habit.id, date=day
            )
        self.habits[habit.id] = self._with_streaks(habit)
        return self.habits[habit.id]

    async def _enter(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        gate = self._gates.get(method)
        if gate is not None:
            await gate.wait()
        exc = self._failures.pop(method, None)
        if exc is not None:
            raise exc

    def _require(self, habit_id: str) -> Habit:
        habit = self.habits.get(habit_id)
        if habit is None:
            raise NotFound(f"Habit {habit_id} does not exist remotely")
        return habit

    def _with_streaks(self, habit: Habit) -> Habit:
        completed = sorted(
            record.date
            for (owner, _), record in self.records.items()
            if owner == habit.id and record.completed
        )
        result = streaks_for(habit, completed, today=dates.today(self.clock()))
        return habit.model_copy(
            update={
                "completed_dates": completed,
                "streak": result.current_streak,
                "best_streak": result.best_streak,
            }
        )

    # RemoteHabitStore

    async def fetch_all(self, user_id: str):
        await self._enter("fetch_all", user_id)
        habits = [habit for habit in self.habits.values() if habit.user_id == user_id]
        ids = {habit.id for habit in habits}
        records = [record for (owner, _), record in self.records.items() if owner in ids]
        return habits, records

    async def create_habit(self, data: dict[str, Any]) -> Habit:
        await self._enter("create_habit", dict(data))
        data = dict(data)
        user_id = data.pop("user_id", None)
        stamp = dates.now_iso(self.clock())
        habit = check_schedule(
            Habit(
                id=f"habit-{next(self._ids)}",
                user_id=user_id,
                created_at=stamp,
                updated_at=stamp,
                **normalize_habit_fields(data),
            )
        )
        self.habits[habit.id] = habit
        return habit

    async def update_habit(self, habit_id: str, fields: dict[str, Any]) -> Habit:
        await self._enter("update_habit", habit_id, dict(fields))
        current = self._require(habit_id)
        updated = current.model_copy(
            update={**normalize_habit_fields(fields), "updated_at": dates.now_iso(self.clock())}
        )
        self.habits[habit_id] = self._with_streaks(updated)
        return self.habits[habit_id]

    async def delete_habit(self, habit_id: str) -> None:
        await self._enter("delete_habit", habit_id)
        self._require(habit_id)
        del self.habits[habit_id]
        self.records = {key: value for key, value in self.records.items() if key[0] != habit_id}

    async def toggle_completion(self, habit_id: str, date: str, note: Optional[str] = None):
        await self._enter("toggle_completion", habit_id, date, note)
        habit = self._require(habit_id)
        existing = self.records.get((habit_id, date))
        if existing is None:
            record = CompletionRecord(
                id=f"rec-{next(self._ids)}", habit_id=habit_id, date=date, note=note
            )
        else:
            record = existing.model_copy(update={"completed": not existing.completed, "note": note})
        self.records[(habit_id, date)] = record
        self.habits[habit_id] = self._with_streaks(habit)
        return self.habits[habit_id], record


@pytest.fixture
def remote(clock) -> FakeRemoteHabitStore:
    return FakeRemoteHabitStore(clock)


# =============================================================================
# Engine fixtures
# =============================================================================


@pytest.fixture
def registry() -> HabitRegistry:
    return HabitRegistry()


@pytest.fixture
def ledger() -> CompletionLedger:
    return CompletionLedger()


@pytest.fixture
def reconciler(registry, ledger, remote, clock) -> SyncReconciler:
    """Online, signed-in reconciler with no local persistence."""

    return SyncReconciler(
        registry=registry,
        ledger=ledger,
        remote=remote,
        clock=clock,
        user_id=USER_ID,
        is_online=True,
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def config(tmp_path, monkeypatch) -> BaseConfig:
    """Configuration rooted in a temporary data directory."""

    monkeypatch.setenv("MADHABITS_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("MADHABITS_DATABASE_URL", raising=False)
    monkeypatch.delenv("MADHABITS_REMOTE_URL", raising=False)
    monkeypatch.delenv("MADHABITS_USER_ID", raising=False)
    monkeypatch.delenv("MADHABITS_START_OFFLINE", raising=False)
    return BaseConfig()


@pytest.fixture
def db_engine(config):
    """Fresh SQLite database for the local snapshot.

    Yields:
        Engine: engine with every table created
    """
    engine, _ = bootstrap_database(config)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def snapshot_repo(session_factory) -> SQLModelSnapshotRepository:
    return SQLModelSnapshotRepository(session_factory)


@pytest.fixture
def remote_session_factory(config):
    """Session factory for a second SQLite file playing the remote database."""

    engine, factory = bootstrap_database(config, config.REMOTE_URL)
    yield factory
    engine.dispose()


# =============================================================================
# Test Data Factories
# =============================================================================


@pytest.fixture
def habit_factory():
    """Factory for Habit values with sensible defaults.

    Returns:
        Callable: Function that builds (but does not store) a Habit
    """

    counter = itertools.count(1)

    def _create_habit(
        name: str = "Read",
        frequency: Frequency | str = Frequency.DAILY,
        days_of_week: list[int] | None = None,
        habit_id: str | None = None,
        created_at: str = "2024-03-01T08:00:00",
        alternative_completion_dates: list[str] | None = None,
        user_id: str = USER_ID,
    ) -> Habit:
        return Habit(
            id=habit_id or f"seed-{next(counter)}",
            user_id=user_id,
            name=name,
            frequency=Frequency(frequency),
            days_of_week=days_of_week or [],
            alternative_completion_dates=alternative_completion_dates or [],
            created_at=created_at,
            updated_at=created_at,
        )

    return _create_habit
