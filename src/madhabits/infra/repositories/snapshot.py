"""SQLModel persistence for the local snapshot (habits, completions, sync marker, outbox)."""

from __future__ import annotations

from typing import Callable

from sqlmodel import Session, delete, select

from ...models.settings import LAST_SYNC_AT_KEY, AppSetting
from ...models.snapshot import (
    CompletionRow,
    HabitRow,
    LocalSnapshot,
    PendingOperation,
    PendingOperationRow,
)
from .settings import SQLModelSettingsRepository


class SQLModelSnapshotRepository:
    """Saves and loads the whole local state in one transaction."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
        self.settings = SQLModelSettingsRepository(session_factory)

    def save(self, snapshot: LocalSnapshot) -> None:
        """Replace the stored snapshot with the given one."""
        with self.session_factory() as session:
            session.exec(delete(CompletionRow))
            session.exec(delete(HabitRow))
            session.exec(delete(PendingOperationRow))

            for habit in snapshot.habits:
                session.add(HabitRow.from_habit(habit))
            for record in snapshot.records:
                session.add(CompletionRow.from_record(record))
            for op in snapshot.pending:
                session.add(
                    PendingOperationRow(
                        kind=op.kind,
                        habit_id=op.habit_id,
                        payload=dict(op.payload),
                        queued_at=op.queued_at,
                    )
                )

            marker = session.get(AppSetting, LAST_SYNC_AT_KEY)
            if snapshot.last_sync_at is None:
                if marker is not None:
                    session.delete(marker)
            elif marker is None:
                session.add(
                    AppSetting(
                        key=LAST_SYNC_AT_KEY,
                        value=snapshot.last_sync_at,
                        description="Last successful full sync",
                    )
                )
            else:
                marker.value = snapshot.last_sync_at
                session.add(marker)
            session.commit()

    def load(self) -> LocalSnapshot:
        """Return the stored snapshot (empty when nothing was saved yet)."""
        with self.session_factory() as session:
            habits = [
                row.to_habit()
                for row in session.exec(
                    select(HabitRow).order_by(HabitRow.created_at, HabitRow.id)  # type: ignore[arg-type]
                ).all()
            ]
            records = [
                row.to_record()
                for row in session.exec(
                    select(CompletionRow).order_by(CompletionRow.habit_id, CompletionRow.date)  # type: ignore[arg-type]
                ).all()
            ]
            pending = [
                PendingOperation(
                    kind=row.kind,
                    habit_id=row.habit_id,
                    payload=dict(row.payload or {}),
                    queued_at=row.queued_at,
                )
                for row in session.exec(
                    select(PendingOperationRow).order_by(PendingOperationRow.seq)  # type: ignore[arg-type]
                ).all()
            ]

        marker = self.settings.get(LAST_SYNC_AT_KEY)
        return LocalSnapshot(
            habits=habits,
            records=records,
            last_sync_at=marker.value if marker else None,
            pending=pending,
        )


__all__ = ["SQLModelSnapshotRepository"]
