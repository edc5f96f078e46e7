"""Tests for the SQLModel-backed remote habit store."""

from __future__ import annotations

import pytest

from madhabits.errors import NotFound, ValidationError
from madhabits.infra.remote import SQLModelRemoteHabitStore
from madhabits.models.habit import Frequency


@pytest.fixture
def store(remote_session_factory, clock):
    return SQLModelRemoteHabitStore(remote_session_factory, clock=clock)


def _payload(**overrides):
    data = {"name": "Read", "frequency": "daily", "days_of_week": [], "user_id": "user-1"}
    data.update(overrides)
    return data


class TestSQLModelRemoteHabitStore:
    @pytest.mark.asyncio
    async def test_create_assigns_id_and_timestamps(self, store):
        habit = await store.create_habit(_payload())

        assert habit.id
        assert not habit.is_provisional
        assert habit.user_id == "user-1"
        assert habit.created_at == "2024-03-15T09:30:00"

    @pytest.mark.asyncio
    async def test_create_validates(self, store):
        with pytest.raises(ValidationError):
            await store.create_habit(_payload(frequency="weekly"))

    @pytest.mark.asyncio
    async def test_toggle_twice_recomputes_streak(self, store):
        habit = await store.create_habit(_payload())

        updated, record = await store.toggle_completion(habit.id, "2024-03-15", "morning")
        assert record.completed is True
        assert record.note == "morning"
        assert updated.streak == 1
        assert updated.completed_dates == ["2024-03-15"]

        updated, record = await store.toggle_completion(habit.id, "2024-03-15")
        assert record.completed is False
        assert updated.streak == 0
        assert updated.best_streak == 0
        assert updated.completed_dates == []

    @pytest.mark.asyncio
    async def test_update_alternative_dates_recomputes_weekly_streak(self, store):
        habit = await store.create_habit(_payload(frequency="weekly", days_of_week=[1, 3, 5]))
        await store.toggle_completion(habit.id, "2024-03-11")
        await store.toggle_completion(habit.id, "2024-03-15")

        updated = await store.update_habit(
            habit.id, {"alternative_completion_dates": ["2024-03-14"]}
        )

        assert updated.frequency == Frequency.WEEKLY
        assert updated.streak == 3

    @pytest.mark.asyncio
    async def test_fetch_all_is_scoped_to_user(self, store):
        mine = await store.create_habit(_payload())
        await store.create_habit(_payload(name="Theirs", user_id="user-2"))
        await store.toggle_completion(mine.id, "2024-03-15")

        habits, records = await store.fetch_all("user-1")

        assert [h.id for h in habits] == [mine.id]
        assert [(r.habit_id, r.date) for r in records] == [(mine.id, "2024-03-15")]

    @pytest.mark.asyncio
    async def test_delete_removes_habit_and_records(self, store):
        habit = await store.create_habit(_payload())
        await store.toggle_completion(habit.id, "2024-03-15")

        await store.delete_habit(habit.id)

        assert await store.fetch_all("user-1") == ([], [])
        with pytest.raises(NotFound):
            await store.toggle_completion(habit.id, "2024-03-15")

    @pytest.mark.asyncio
    async def test_unknown_habit(self, store):
        with pytest.raises(NotFound):
            await store.update_habit("missing", {"name": "x"})
        with pytest.raises(NotFound):
            await store.delete_habit("missing")
