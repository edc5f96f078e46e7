"""In-memory habit registry."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from ...errors import NotFound, ValidationError
from ...models.habit import Frequency, Habit
from ...services import dates
from ...services.habits import in_makeup_window, makeup_window

EDITABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "icon",
        "color",
        "frequency",
        "days_of_week",
    }
)

# Make-up dates only change through set_alternative_completion_date.
STORED_FIELDS = EDITABLE_FIELDS | {"alternative_completion_dates"}


def normalize_habit_fields(
    fields: dict[str, Any], *, allowed: frozenset[str] = STORED_FIELDS
) -> dict[str, Any]:
    """Validate and normalize habit fields.

    ``allowed`` defaults to everything a store persists; user edits pass
    ``EDITABLE_FIELDS``.

    Raises:
        ValidationError: unknown field, empty name, unknown frequency, weekly
            habit without days, weekday outside 0-6 or malformed make-up date.
    """

    unknown = set(fields) - allowed
    if unknown:
        raise ValidationError(f"Unknown habit field(s): {', '.join(sorted(unknown))}")

    data = dict(fields)
    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            raise ValidationError("Habit name is required")
        data["name"] = name

    if "frequency" in data:
        try:
            data["frequency"] = Frequency(data["frequency"])
        except ValueError as exc:
            raise ValidationError(f"Unknown frequency: {data['frequency']!r}") from exc

    if "days_of_week" in data:
        days = sorted(set(data["days_of_week"] or []))
        if any(not isinstance(day, int) or not 0 <= day <= 6 for day in days):
            raise ValidationError("Days of week must be integers between 0 (Sunday) and 6")
        data["days_of_week"] = days

    if "alternative_completion_dates" in data:
        alternatives = sorted(set(data["alternative_completion_dates"] or []))
        if not all(dates.is_iso_date(day) for day in alternatives):
            raise ValidationError("Alternative completion dates must be YYYY-MM-DD")
        data["alternative_completion_dates"] = alternatives

    return data


def check_schedule(habit: Habit) -> Habit:
    """Enforce the frequency/days pairing; weekly needs days, others carry none."""

    if habit.frequency == Frequency.WEEKLY:
        if not habit.days_of_week:
            raise ValidationError("Please select at least one day of the week")
        return habit
    if habit.days_of_week:
        return habit.model_copy(update={"days_of_week": []})
    return habit


class HabitRegistry:
    """Habit definitions keyed by id, replaced wholesale on every mutation."""

    def __init__(self, habits: Iterable[Habit] = ()) -> None:
        self._habits: dict[str, Habit] = {}
        self.version = 0
        self.replace_all(habits)

    def _commit(self, habits: dict[str, Habit]) -> None:
        self._habits = habits
        self.version += 1

    def __len__(self) -> int:
        return len(self._habits)

    def __contains__(self, habit_id: object) -> bool:
        return habit_id in self._habits

    def all(self) -> list[Habit]:
        return list(self._habits.values())

    def get(self, habit_id: str) -> Optional[Habit]:
        return self._habits.get(habit_id)

    def require(self, habit_id: str) -> Habit:
        habit = self._habits.get(habit_id)
        if habit is None:
            raise NotFound(f"Habit {habit_id} does not exist")
        return habit

    def create(self, habit: Habit) -> Habit:
        if habit.id in self._habits:
            raise ValidationError(f"Habit {habit.id} already exists")
        normalize_habit_fields(
            {"name": habit.name, "frequency": habit.frequency, "days_of_week": habit.days_of_week}
        )
        habit = check_schedule(habit)
        self._commit({**self._habits, habit.id: habit})
        return habit

    def update(self, habit_id: str, changes: dict[str, Any], *, updated_at: str | None = None) -> Habit:
        current = self.require(habit_id)
        data = normalize_habit_fields(changes, allowed=EDITABLE_FIELDS)
        data["updated_at"] = updated_at or dates.now_iso()
        habit = check_schedule(current.model_copy(update=data))
        self._commit({**self._habits, habit_id: habit})
        return habit

    def put(self, habit: Habit) -> Habit:
        """Store a habit as given (derived-field refresh or remote confirmation)."""

        self._commit({**self._habits, habit.id: habit})
        return habit

    def delete(self, habit_id: str) -> Habit:
        habit = self.require(habit_id)
        self._commit({key: value for key, value in self._habits.items() if key != habit_id})
        return habit

    def restore(self, habit_id: str, habit: Optional[Habit]) -> None:
        """Put a habit back as captured before a mutation (None means absent)."""

        habits = {key: value for key, value in self._habits.items() if key != habit_id}
        if habit is not None:
            habits[habit_id] = habit
        self._commit(habits)

    def rename_id(self, old_id: str, habit: Habit) -> None:
        """Swap a provisional habit for its confirmed counterpart, keeping order."""

        habits = {}
        for key, value in self._habits.items():
            if key == old_id:
                habits[habit.id] = habit
            else:
                habits[key] = value
        habits.setdefault(habit.id, habit)
        self._commit(habits)

    def set_alternative_completion_date(
        self,
        habit_id: str,
        date: str,
        *,
        missed_date: str,
        updated_at: str | None = None,
    ) -> Habit:
        """Record ``date`` as the make-up completion for ``missed_date``.

        Only the seven days right after the missed date qualify; anything on or
        before the missed date, or later than a week after it, is rejected.
        """

        habit = self.require(habit_id)
        if not dates.is_iso_date(date) or not dates.is_iso_date(missed_date):
            raise ValidationError("Dates must be YYYY-MM-DD")
        if habit.frequency != Frequency.WEEKLY:
            raise ValidationError("Only weekly habits take alternative completion dates")
        if not in_makeup_window(date, missed_date):
            first, last = makeup_window(missed_date)
            raise ValidationError(
                f"Alternative date {date} must fall between {first} and {last}"
            )
        if date in habit.alternative_completion_dates:
            return habit

        alternatives = sorted({*habit.alternative_completion_dates, date})
        updated = habit.model_copy(
            update={
                "alternative_completion_dates": alternatives,
                "updated_at": updated_at or dates.now_iso(),
            }
        )
        self._commit({**self._habits, habit_id: updated})
        return updated

    def replace_all(self, habits: Iterable[Habit]) -> None:
        self._commit({habit.id: habit for habit in habits})

    def snapshot(self) -> tuple[Habit, ...]:
        """All habits, oldest first."""

        return tuple(sorted(self._habits.values(), key=lambda h: (h.created_at, h.id)))


__all__ = ["EDITABLE_FIELDS", "STORED_FIELDS", "HabitRegistry", "check_schedule", "normalize_habit_fields"]
