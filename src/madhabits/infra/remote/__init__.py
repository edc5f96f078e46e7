"""Remote habit store implementations."""

from .sql import SQLModelRemoteHabitStore

__all__ = ["SQLModelRemoteHabitStore"]
