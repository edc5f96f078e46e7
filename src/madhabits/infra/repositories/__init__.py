"""Concrete repository implementations."""

from .ledger import CompletionLedger, provisional_id
from .registry import HabitRegistry
from .settings import SQLModelSettingsRepository
from .snapshot import SQLModelSnapshotRepository

__all__ = [
    "CompletionLedger",
    "HabitRegistry",
    "SQLModelSettingsRepository",
    "SQLModelSnapshotRepository",
    "provisional_id",
]
