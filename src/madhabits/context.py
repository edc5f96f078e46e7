"""Application context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlmodel import Session

from .config import BaseConfig
from .domain.repositories.remote import RemoteHabitStore
from .infra.database import create_db_engine, create_session_factory, init_database
from .infra.remote import SQLModelRemoteHabitStore
from .infra.repositories import (
    CompletionLedger,
    HabitRegistry,
    SQLModelSettingsRepository,
    SQLModelSnapshotRepository,
)
from .scheduler import SyncScheduler
from .services.habit_warnings import WarningEvaluator
from .services.sync import SyncReconciler


@dataclass
class AppContext:
    """Centralized application context with services and state.

    Built once at start-up and passed by reference; there is no module-level
    store, so tests can build as many independent contexts as they like.
    """

    # Configuration
    config: BaseConfig

    # Local snapshot storage
    session_factory: Callable[[], Session]
    settings_repo: SQLModelSettingsRepository
    snapshot_repo: SQLModelSnapshotRepository

    # Habit engine
    registry: HabitRegistry
    ledger: CompletionLedger
    remote: RemoteHabitStore
    reconciler: SyncReconciler
    warnings: WarningEvaluator
    scheduler: SyncScheduler

    def require_user_id(self) -> str:
        """Return the current user id or raise if not set."""

        return self.reconciler.require_user_id()


def create_app_context(
    config: Optional[BaseConfig] = None,
    *,
    remote: Optional[RemoteHabitStore] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> AppContext:
    """Create the context and hydrate it from the persisted local snapshot."""

    if config is None:
        config = BaseConfig()

    engine = create_db_engine(config)
    init_database(engine)
    session_factory = create_session_factory(engine)

    if remote is None:
        remote_engine = create_db_engine(config, config.REMOTE_URL)
        init_database(remote_engine)
        remote = SQLModelRemoteHabitStore(create_session_factory(remote_engine), clock=clock)

    snapshot_repo = SQLModelSnapshotRepository(session_factory)
    registry = HabitRegistry()
    ledger = CompletionLedger()
    reconciler = SyncReconciler(
        registry=registry,
        ledger=ledger,
        remote=remote,
        snapshot_repo=snapshot_repo,
        clock=clock,
        user_id=config.USER_ID,
        is_online=not config.START_OFFLINE,
        sync_interval_seconds=config.SYNC_INTERVAL_SECONDS,
    )
    reconciler.hydrate(snapshot_repo.load())

    return AppContext(
        config=config,
        session_factory=session_factory,
        settings_repo=snapshot_repo.settings,
        snapshot_repo=snapshot_repo,
        registry=registry,
        ledger=ledger,
        remote=remote,
        reconciler=reconciler,
        warnings=WarningEvaluator(registry, ledger, clock=clock),
        scheduler=SyncScheduler(reconciler, interval_seconds=config.SYNC_INTERVAL_SECONDS),
    )
