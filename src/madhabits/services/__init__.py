"""Service modules.

Only the leaf helpers are imported here; ``sync`` and ``habit_warnings``
depend on the repositories and are imported from their own modules.
"""

from . import dates, habits

__all__ = ["dates", "habits"]
