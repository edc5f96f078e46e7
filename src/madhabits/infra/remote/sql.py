"""Remote habit store backed by a SQL database through SQLModel."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from sqlmodel import Session, select

from ...errors import NotFound
from ...models.habit import CompletionRecord, Frequency, Habit
from ...models.snapshot import CompletionRow, HabitRow
from ...services import dates
from ...services.habits import streaks_for
from ..repositories.registry import check_schedule, normalize_habit_fields

logger = logging.getLogger("madhabits.remote")


class SQLModelRemoteHabitStore:
    """Server-side store: assigns ids and recomputes streaks authoritatively.

    Every session is opened in a worker thread so the event loop never blocks
    on the database.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session_factory = session_factory
        self.clock = clock

    async def fetch_all(self, user_id: str) -> tuple[list[Habit], list[CompletionRecord]]:
        return await asyncio.to_thread(self._fetch_all, user_id)

    async def create_habit(self, data: dict[str, Any]) -> Habit:
        return await asyncio.to_thread(self._create_habit, dict(data))

    async def update_habit(self, habit_id: str, fields: dict[str, Any]) -> Habit:
        return await asyncio.to_thread(self._update_habit, habit_id, dict(fields))

    async def delete_habit(self, habit_id: str) -> None:
        await asyncio.to_thread(self._delete_habit, habit_id)

    async def toggle_completion(
        self, habit_id: str, date: str, note: Optional[str] = None
    ) -> tuple[Habit, CompletionRecord]:
        return await asyncio.to_thread(self._toggle_completion, habit_id, date, note)

    # Blocking implementations

    def _fetch_all(self, user_id: str) -> tuple[list[Habit], list[CompletionRecord]]:
        with self.session_factory() as session:
            habit_rows = session.exec(
                select(HabitRow).where(HabitRow.user_id == user_id).order_by(HabitRow.created_at)  # type: ignore[arg-type]
            ).all()
            habit_ids = [row.id for row in habit_rows]
            completion_rows = []
            if habit_ids:
                completion_rows = session.exec(
                    select(CompletionRow)
                    .where(CompletionRow.habit_id.in_(habit_ids))  # type: ignore[union-attr]
                    .order_by(CompletionRow.habit_id, CompletionRow.date)  # type: ignore[arg-type]
                ).all()
            habits = [row.to_habit() for row in habit_rows]
            records = [row.to_record() for row in completion_rows]
        logger.debug("Fetched %d habits / %d records for %s", len(habits), len(records), user_id)
        return habits, records

    def _create_habit(self, data: dict[str, Any]) -> Habit:
        user_id = data.pop("user_id", None)
        fields = normalize_habit_fields(data)
        stamp = dates.now_iso(self.clock())
        habit = check_schedule(
            Habit(
                id=uuid.uuid4().hex,
                user_id=user_id,
                created_at=stamp,
                updated_at=stamp,
                **fields,
            )
        )
        with self.session_factory() as session:
            session.add(HabitRow.from_habit(habit))
            session.commit()
        logger.info("Created habit %s", habit.id)
        return habit

    def _update_habit(self, habit_id: str, fields: dict[str, Any]) -> Habit:
        changes = normalize_habit_fields(fields)
        with self.session_factory() as session:
            row = self._require_row(session, habit_id)
            habit = row.to_habit().model_copy(
                update={**changes, "updated_at": dates.now_iso(self.clock())}
            )
            habit = self._with_streaks(session, check_schedule(habit))
            self._write_row(session, row, habit)
            session.commit()
        return habit

    def _delete_habit(self, habit_id: str) -> None:
        with self.session_factory() as session:
            row = self._require_row(session, habit_id)
            for completion in session.exec(
                select(CompletionRow).where(CompletionRow.habit_id == habit_id)
            ).all():
                session.delete(completion)
            session.delete(row)
            session.commit()
        logger.info("Deleted habit %s", habit_id)

    def _toggle_completion(
        self, habit_id: str, date: str, note: Optional[str]
    ) -> tuple[Habit, CompletionRecord]:
        with self.session_factory() as session:
            row = self._require_row(session, habit_id)
            completion = session.exec(
                select(CompletionRow)
                .where(CompletionRow.habit_id == habit_id)
                .where(CompletionRow.date == date)
            ).first()
            if completion is None:
                completion = CompletionRow(
                    id=uuid.uuid4().hex, habit_id=habit_id, date=date, completed=True, note=note
                )
            else:
                completion.completed = not completion.completed
                completion.note = note
            session.add(completion)
            session.flush()

            habit = row.to_habit().model_copy(update={"updated_at": dates.now_iso(self.clock())})
            habit = self._with_streaks(session, habit)
            self._write_row(session, row, habit)
            record = completion.to_record()
            session.commit()
        return habit, record

    # Helpers

    @staticmethod
    def _require_row(session: Session, habit_id: str) -> HabitRow:
        row = session.get(HabitRow, habit_id)
        if row is None:
            raise NotFound(f"Habit {habit_id} does not exist remotely")
        return row

    def _with_streaks(self, session: Session, habit: Habit) -> Habit:
        completed = sorted(
            completion.date
            for completion in session.exec(
                select(CompletionRow)
                .where(CompletionRow.habit_id == habit.id)
                .where(CompletionRow.completed == True)  # noqa: E712
            ).all()
        )
        result = streaks_for(habit, completed, today=dates.today(self.clock()))
        return habit.model_copy(
            update={
                "completed_dates": completed,
                "streak": result.current_streak,
                "best_streak": result.best_streak,
            }
        )

    @staticmethod
    def _write_row(session: Session, row: HabitRow, habit: Habit) -> None:
        row.name = habit.name
        row.description = habit.description
        row.icon = habit.icon
        row.color = habit.color
        row.frequency = Frequency(habit.frequency).value
        row.days_of_week = list(habit.days_of_week)
        row.streak = habit.streak
        row.best_streak = habit.best_streak
        row.completed_dates = list(habit.completed_dates)
        row.alternative_completion_dates = list(habit.alternative_completion_dates)
        row.updated_at = habit.updated_at
        session.add(row)


__all__ = ["SQLModelRemoteHabitStore"]
