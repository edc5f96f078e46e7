"""Repository protocols for dependency inversion."""

from .remote import RemoteHabitStore

__all__ = ["RemoteHabitStore"]
