"""Error kinds raised by the habit engine."""

from __future__ import annotations


class HabitEngineError(Exception):
    """Base class for every error the engine raises on purpose."""


class ValidationError(HabitEngineError, ValueError):
    """Input rejected locally before any state change or network call."""


class AuthRequired(HabitEngineError, RuntimeError):
    """A mutation or fetch was attempted without a signed-in user."""

    def __init__(self, message: str = "User is not authenticated") -> None:
        super().__init__(message)


class NotFound(HabitEngineError, LookupError):
    """The habit or completion record does not exist locally."""


class SyncFailed(HabitEngineError):
    """A remote call failed; any optimistic change was already rolled back."""

    def __init__(self, message: str, *, habit_id: str | None = None) -> None:
        super().__init__(message)
        self.habit_id = habit_id


__all__ = [
    "AuthRequired",
    "HabitEngineError",
    "NotFound",
    "SyncFailed",
    "ValidationError",
]
