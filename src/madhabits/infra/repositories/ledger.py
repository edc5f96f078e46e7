"""In-memory completion ledger."""

from __future__ import annotations

import uuid
from typing import Iterable, Optional

from ...errors import ValidationError
from ...models.habit import PROVISIONAL_PREFIX, CompletionRecord
from ...services import dates

_Key = tuple[str, str]


def provisional_id() -> str:
    """Return a locally generated id, tagged so it is never mistaken for a remote one."""

    return f"{PROVISIONAL_PREFIX}{uuid.uuid4().hex[:12]}"


class CompletionLedger:
    """Per-habit, per-date completion records.

    The whole mapping is replaced on every mutation (copy-on-write), so a
    reference obtained from :meth:`snapshot` never changes underneath a caller.
    """

    def __init__(self, records: Iterable[CompletionRecord] = ()) -> None:
        self._records: dict[_Key, CompletionRecord] = {}
        self.version = 0
        self.replace_all(records)

    def _commit(self, records: dict[_Key, CompletionRecord]) -> None:
        self._records = records
        self.version += 1

    def __len__(self) -> int:
        return len(self._records)

    def get(self, habit_id: str, date: str) -> Optional[CompletionRecord]:
        return self._records.get((habit_id, date))

    def toggle(self, habit_id: str, date: str, note: str | None = None) -> CompletionRecord:
        """Flip the record for (habit, date), creating a completed one if missing.

        Calling this twice in a row returns the pair to its original completion
        state; the record itself is kept so its history survives.
        """

        if not dates.is_iso_date(date):
            raise ValidationError(f"Invalid completion date: {date!r}")

        existing = self._records.get((habit_id, date))
        if existing is not None:
            record = existing.model_copy(update={"completed": not existing.completed, "note": note})
        else:
            record = CompletionRecord(
                id=provisional_id(),
                habit_id=habit_id,
                date=date,
                completed=True,
                note=note,
            )
        self._commit({**self._records, (habit_id, date): record})
        return record

    def upsert(self, record: CompletionRecord) -> CompletionRecord:
        """Store a record, replacing whatever exists for its (habit, date)."""

        self._commit({**self._records, (record.habit_id, record.date): record})
        return record

    def records_for_habit(self, habit_id: str) -> list[CompletionRecord]:
        return sorted(
            (record for (owner, _), record in self._records.items() if owner == habit_id),
            key=lambda record: record.date,
        )

    def records_for_date(self, date: str) -> list[CompletionRecord]:
        return sorted(
            (record for (_, day), record in self._records.items() if day == date),
            key=lambda record: record.habit_id,
        )

    def completed_dates(self, habit_id: str) -> list[str]:
        return [record.date for record in self.records_for_habit(habit_id) if record.completed]

    def is_completed(self, habit_id: str, date: str) -> bool:
        record = self._records.get((habit_id, date))
        return record is not None and record.completed

    def remove_all_for_habit(self, habit_id: str) -> list[CompletionRecord]:
        """Cascade delete; returns the removed records."""

        removed = self.records_for_habit(habit_id)
        if removed:
            self._commit(
                {key: record for key, record in self._records.items() if key[0] != habit_id}
            )
        return removed

    def restore_habit(self, habit_id: str, records: Iterable[CompletionRecord]) -> None:
        """Put back exactly the given records for one habit, dropping any others."""

        kept = {key: record for key, record in self._records.items() if key[0] != habit_id}
        for record in records:
            kept[(habit_id, record.date)] = record
        self._commit(kept)

    def reassign(self, old_habit_id: str, new_habit_id: str) -> None:
        """Move records from a provisional habit id to its confirmed id."""

        moved: dict[_Key, CompletionRecord] = {}
        for (owner, day), record in self._records.items():
            if owner == old_habit_id:
                moved[(new_habit_id, day)] = record.model_copy(update={"habit_id": new_habit_id})
            else:
                moved[(owner, day)] = record
        self._commit(moved)

    def replace_all(self, records: Iterable[CompletionRecord]) -> None:
        self._commit({(record.habit_id, record.date): record for record in records})

    def snapshot(self) -> tuple[CompletionRecord, ...]:
        """All records, ordered by habit then date."""

        return tuple(sorted(self._records.values(), key=lambda r: (r.habit_id, r.date)))


__all__ = ["CompletionLedger", "provisional_id"]
