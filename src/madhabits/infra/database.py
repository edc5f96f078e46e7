"""Database infrastructure for the local snapshot and the SQL remote store."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import event
from sqlmodel import Session, SQLModel, create_engine

from ..config import BaseConfig


def create_db_engine(config: BaseConfig, url: str | None = None):
    """Create SQLModel engine from configuration."""
    url = url or config.DATABASE_URL
    engine = create_engine(url, **config.sqlalchemy_engine_options(url))
    if url.startswith("sqlite"):
        pragmas = dict(config.SQLITE_PRAGMAS)
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            pragmas.pop("journal_mode", None)

        @event.listens_for(engine, "connect")
        def _apply_pragmas(dbapi_connection, _record) -> None:  # pragma: no cover - driver hook
            cursor = dbapi_connection.cursor()
            for name, value in pragmas.items():
                cursor.execute(f"PRAGMA {name}={value}")
            cursor.close()

    return engine


def init_database(engine) -> None:
    """Initialize database schema."""
    # Import all models to ensure they're registered
    from .. import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def create_session_factory(engine):
    """Create a session factory function."""

    @contextmanager
    def factory() -> Iterator[Session]:
        """Create a new session."""
        session = Session(engine, expire_on_commit=False)
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return factory


def bootstrap_database(config: BaseConfig | None = None, url: str | None = None):
    """Convenience bootstrap for engine + session_factory with schema init.

    Returns (engine, session_factory).
    """

    cfg = config or BaseConfig()
    engine = create_db_engine(cfg, url)
    init_database(engine)
    return engine, create_session_factory(engine)
