"""Remote habit store protocol."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from ...models.habit import CompletionRecord, Habit


class RemoteHabitStore(Protocol):
    """Source of truth the reconciler confirms optimistic changes against.

    Implementations own their timeouts; the engine imposes none.
    """

    async def fetch_all(self, user_id: str) -> tuple[list[Habit], list[CompletionRecord]]:
        """Return every habit and completion record for the user."""
        ...

    async def create_habit(self, data: dict[str, Any]) -> Habit:
        """Create a habit from editable fields plus ``user_id``; assigns the id."""
        ...

    async def update_habit(self, habit_id: str, fields: dict[str, Any]) -> Habit:
        """Apply a partial update and return the stored habit."""
        ...

    async def delete_habit(self, habit_id: str) -> None:
        """Delete a habit and its completion records."""
        ...

    async def toggle_completion(
        self, habit_id: str, date: str, note: Optional[str] = None
    ) -> tuple[Habit, CompletionRecord]:
        """Toggle a completion and return the habit with recomputed streak fields."""
        ...
