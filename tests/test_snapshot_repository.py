"""Tests for persisting the local snapshot through SQLModel."""

from __future__ import annotations

import pytest

from madhabits.infra.repositories import CompletionLedger, HabitRegistry
from madhabits.models.habit import CompletionRecord, Frequency
from madhabits.models.settings import LAST_SYNC_AT_KEY
from madhabits.models.snapshot import LocalSnapshot, PendingOperation
from madhabits.services.sync import SyncReconciler


class TestSnapshotRepository:
    def test_empty_database_loads_empty_snapshot(self, snapshot_repo):
        snapshot = snapshot_repo.load()

        assert snapshot.habits == []
        assert snapshot.records == []
        assert snapshot.pending == []
        assert snapshot.last_sync_at is None

    def test_save_and_load(self, snapshot_repo, habit_factory):
        weekly = habit_factory(
            habit_id="w1",
            frequency=Frequency.WEEKLY,
            days_of_week=[1, 3],
            alternative_completion_dates=["2024-03-14"],
            created_at="2024-03-02T08:00:00",
        )
        daily = habit_factory(habit_id="d1", created_at="2024-03-01T08:00:00")
        records = [
            CompletionRecord(id="r1", habit_id="d1", date="2024-03-14", note="ok"),
            CompletionRecord(id="r2", habit_id="w1", date="2024-03-13", completed=False),
        ]
        pending = [
            PendingOperation("create", "temp-1", {"name": "Walk", "frequency": "daily"}, "2024-03-15T09:00:00"),
            PendingOperation("toggle", "temp-1", {"date": "2024-03-15", "note": None}, "2024-03-15T09:01:00"),
        ]

        snapshot_repo.save(
            LocalSnapshot(
                habits=[weekly, daily],
                records=records,
                last_sync_at="2024-03-15T08:00:00",
                pending=pending,
            )
        )
        loaded = snapshot_repo.load()

        assert [h.id for h in loaded.habits] == ["d1", "w1"]
        assert loaded.habits[1].days_of_week == [1, 3]
        assert loaded.habits[1].alternative_completion_dates == ["2024-03-14"]
        assert loaded.habits[1].frequency == Frequency.WEEKLY
        assert [r.model_dump() for r in loaded.records] == [r.model_dump() for r in records]
        assert loaded.pending == pending
        assert loaded.last_sync_at == "2024-03-15T08:00:00"

    def test_save_replaces_previous_snapshot(self, snapshot_repo, habit_factory):
        snapshot_repo.save(LocalSnapshot(habits=[habit_factory(habit_id="a")], last_sync_at="2024-03-15T08:00:00"))

        snapshot_repo.save(LocalSnapshot(habits=[habit_factory(habit_id="b")]))
        loaded = snapshot_repo.load()

        assert [h.id for h in loaded.habits] == ["b"]
        assert loaded.last_sync_at is None
        assert snapshot_repo.settings.get(LAST_SYNC_AT_KEY) is None


class TestReconcilerPersistence:
    @pytest.mark.asyncio
    async def test_offline_work_survives_restart(self, snapshot_repo, remote, clock):
        first = SyncReconciler(
            registry=HabitRegistry(),
            ledger=CompletionLedger(),
            remote=remote,
            snapshot_repo=snapshot_repo,
            clock=clock,
            user_id="user-1",
            is_online=False,
        )
        draft = await first.add_habit("Read")
        await first.toggle_completion(draft.id, "2024-03-15")

        second = SyncReconciler(
            registry=HabitRegistry(),
            ledger=CompletionLedger(),
            remote=remote,
            snapshot_repo=snapshot_repo,
            clock=clock,
            user_id="user-1",
        )
        second.hydrate(snapshot_repo.load())

        assert [h.id for h in second.registry.all()] == [draft.id]
        assert second.ledger.is_completed(draft.id, "2024-03-15")
        assert [op.kind for op in second.pending] == ["create", "toggle"]

        assert await second.fetch_habits() is True
        assert snapshot_repo.load().pending == []
        assert [h.id for h in snapshot_repo.load().habits] == ["habit-1"]

