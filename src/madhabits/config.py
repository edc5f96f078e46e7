"""Application configuration objects and helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    """Interpret environment variable values as booleans."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "MadHabits"
    DB_FILENAME = "madhabits.db"
    REMOTE_DB_FILENAME = "remote.db"
    SYNC_INTERVAL_SECONDS = 5 * 60
    SQLITE_PRAGMAS = {"journal_mode": "wal", "foreign_keys": "on"}

    def __init__(self) -> None:
        self.DATA_DIR = self._resolve_data_dir()
        self.DEV_MODE = _env_bool("MADHABITS_DEV_MODE", default=True)
        self.START_OFFLINE = _env_bool("MADHABITS_START_OFFLINE", default=False)
        self.USER_ID = os.getenv("MADHABITS_USER_ID") or None
        self.DATABASE_URL = os.getenv(
            "MADHABITS_DATABASE_URL", self._sqlite_url(self.DB_FILENAME)
        )
        self.REMOTE_URL = os.getenv(
            "MADHABITS_REMOTE_URL", self._sqlite_url(self.REMOTE_DB_FILENAME)
        )

    def _resolve_data_dir(self) -> Path:
        """Return the directory where the local snapshot and logs live."""

        data_root = os.getenv("MADHABITS_DATA_DIR", "instance")
        path = Path(data_root).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _sqlite_url(self, filename: str) -> str:
        return f"sqlite:///{self.DATA_DIR / filename}"

    def sqlalchemy_engine_options(self, url: str) -> dict[str, Any]:
        """Expose engine kwargs for SQLModel to consume."""

        if not url.startswith("sqlite"):
            return {}
        connect_args: dict[str, Any] = {"check_same_thread": False}
        return {"connect_args": connect_args}


class DevConfig(BaseConfig):
    """Development configuration using local SQLite."""

    DEBUG = True
    TESTING = False
