"""Model exports."""

from .habit import CompletionRecord, Frequency, Habit, is_provisional
from .settings import AppSetting
from .snapshot import (
    CompletionRow,
    HabitRow,
    LocalSnapshot,
    PendingOperation,
    PendingOperationRow,
)

__all__ = [
    "AppSetting",
    "CompletionRecord",
    "CompletionRow",
    "Frequency",
    "Habit",
    "HabitRow",
    "LocalSnapshot",
    "PendingOperation",
    "PendingOperationRow",
    "is_provisional",
]
