"""MadHabits habit tracking engine."""

from __future__ import annotations

from .config import BaseConfig, DevConfig
from .context import AppContext, create_app_context

__all__ = ["AppContext", "BaseConfig", "DevConfig", "create_app_context"]
