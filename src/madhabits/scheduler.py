"""Background scheduler for the periodic habit sync."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import BaseConfig

if TYPE_CHECKING:
    from .services.sync import SyncReconciler

logger = logging.getLogger("madhabits.scheduler")

PERIODIC_SYNC_JOB_ID = "periodic_sync"


class SyncScheduler:
    """Runs ``SyncReconciler.periodic_sync`` on a fixed interval.

    The reconciler itself decides whether a tick actually syncs (online,
    signed in, last sync old enough).
    """

    def __init__(
        self,
        reconciler: SyncReconciler,
        *,
        interval_seconds: int = BaseConfig.SYNC_INTERVAL_SECONDS,
    ):
        """Initialize the scheduler.

        Args:
            reconciler: Reconciler whose periodic hook is scheduled
            interval_seconds: Seconds between ticks
        """
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds
        self.scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self) -> None:
        """Start the scheduler; must be called from inside the event loop."""
        if self.scheduler is not None:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            func=self._tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=PERIODIC_SYNC_JOB_ID,
            name="Periodic habit sync",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self.scheduler.start()
        logger.info("Scheduled periodic sync every %s seconds", self.interval_seconds)

    def stop(self) -> None:
        """Stop the scheduler without waiting for a running tick."""
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
            logger.info("Background scheduler stopped")

    async def _tick(self) -> None:
        try:
            await self.reconciler.periodic_sync()
        except Exception as exc:
            logger.error(f"Periodic sync failed: {exc}", exc_info=True)


def create_scheduler(
    reconciler: SyncReconciler,
    *,
    interval_seconds: int = BaseConfig.SYNC_INTERVAL_SECONDS,
    auto_start: bool = False,
) -> SyncScheduler:
    """Create and optionally start a periodic sync scheduler."""
    scheduler = SyncScheduler(reconciler, interval_seconds=interval_seconds)
    if auto_start:
        scheduler.start()
    return scheduler
