"""Optimistic mutations, rollback and resync against the remote habit store.

Every mutating call follows the same life cycle::

    IDLE -> OPTIMISTIC -> CONFIRMED | ROLLED_BACK

The optimistic step (registry/ledger update plus streak recompute) runs
synchronously before the first suspension point. Each in-flight mutation owns
one :class:`UndoSnapshot` of the habit it touches; it is dropped on
confirmation and applied on failure. Offline mutations stay optimistic and
are queued as :class:`PendingOperation` entries, replayed in order on the next
sync.

Mutations are serialized per habit id (one in flight per habit). A rapid
second toggle of the same date waits for the first confirmation instead of
racing it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, NoReturn, Optional

from ..config import BaseConfig
from ..domain.repositories.remote import RemoteHabitStore
from ..errors import AuthRequired, HabitEngineError, NotFound, SyncFailed, ValidationError
from ..infra.repositories.ledger import CompletionLedger, provisional_id
from ..infra.repositories.registry import (
    EDITABLE_FIELDS,
    HabitRegistry,
    check_schedule,
    normalize_habit_fields,
)
from ..infra.repositories.snapshot import SQLModelSnapshotRepository
from ..models.habit import CompletionRecord, Frequency, Habit, is_provisional
from ..models.snapshot import LocalSnapshot, PendingOperation
from . import dates
from .habit_warnings import MissedInstance, find_missed_instances
from .habits import can_complete_on, is_due_on, streaks_for

logger = logging.getLogger("madhabits.sync")

DEFAULT_ICON = "🎯"
DEFAULT_COLOR = "#3B82F6"


class MutationState(str, Enum):
    IDLE = "idle"
    OPTIMISTIC = "optimistic"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class UndoSnapshot:
    """Value copy of one habit and its records, taken before a mutation."""

    habit_id: str
    habit: Optional[Habit]
    records: tuple[CompletionRecord, ...]

    @classmethod
    def capture(cls, habit_id: str, registry: HabitRegistry, ledger: CompletionLedger) -> "UndoSnapshot":
        return cls(habit_id, registry.get(habit_id), tuple(ledger.records_for_habit(habit_id)))

    def restore(self, registry: HabitRegistry, ledger: CompletionLedger) -> None:
        registry.restore(self.habit_id, self.habit)
        ledger.restore_habit(self.habit_id, self.records)


@dataclass
class Mutation:
    """One user action travelling through the optimistic life cycle."""

    kind: str
    habit_id: str
    undo: UndoSnapshot
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: MutationState = MutationState.IDLE


def should_sync(
    last_sync_at: str | None,
    now: datetime | None = None,
    *,
    interval_seconds: int = BaseConfig.SYNC_INTERVAL_SECONDS,
) -> bool:
    """Return True when no sync happened yet or the last one is at least one interval old."""

    if not last_sync_at:
        return True
    last = datetime.fromisoformat(last_sync_at)
    now = now or datetime.now()
    # Compare in local wall-clock time whichever side carries a zone.
    if last.tzinfo is not None:
        last = last.astimezone().replace(tzinfo=None)
    if now.tzinfo is not None:
        now = now.astimezone().replace(tzinfo=None)
    return now - last >= timedelta(seconds=interval_seconds)


def _jsonable(fields: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value.value if isinstance(value, Frequency) else value
        for key, value in fields.items()
    }


class SyncReconciler:
    """Single entry point for every habit mutation and sync."""

    def __init__(
        self,
        *,
        registry: HabitRegistry,
        ledger: CompletionLedger,
        remote: RemoteHabitStore,
        snapshot_repo: SQLModelSnapshotRepository | None = None,
        clock=datetime.now,
        user_id: str | None = None,
        is_online: bool = True,
        sync_interval_seconds: int = BaseConfig.SYNC_INTERVAL_SECONDS,
    ) -> None:
        self.registry = registry
        self.ledger = ledger
        self.remote = remote
        self.snapshot_repo = snapshot_repo
        self.clock = clock
        self.user_id = user_id
        self.is_online = is_online
        self.sync_interval_seconds = sync_interval_seconds
        self.last_sync_at: str | None = None
        self.pending: list[PendingOperation] = []
        self.in_flight: dict[str, Mutation] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Session / status
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def require_user_id(self) -> str:
        """Return the current user id or raise if not signed in."""

        if self.user_id is None:
            raise AuthRequired()
        return self.user_id

    async def start(self) -> bool:
        """Fetch on authenticated start-up when the last sync is stale."""

        if not self.is_authenticated or not self.should_sync():
            return False
        try:
            return await self.fetch_habits()
        except SyncFailed:
            logger.error("Initial fetch failed; using local snapshot", exc_info=True)
            return False

    async def sign_in(self, user_id: str) -> bool:
        self.user_id = user_id
        logger.info("Signed in", extra={"user_id": user_id})
        return await self.fetch_habits()

    def sign_out(self) -> None:
        # Local data stays for offline use.
        logger.info("Signed out", extra={"user_id": self.user_id})
        self.user_id = None

    def should_sync(self, now: datetime | None = None) -> bool:
        return should_sync(
            self.last_sync_at,
            now or self.clock(),
            interval_seconds=self.sync_interval_seconds,
        )

    def set_online_status(self, is_online: bool) -> Optional[asyncio.Task]:
        """Feed the network signal; reconnecting while signed in starts a background sync."""

        was_offline = not self.is_online
        self.is_online = is_online
        logger.info("Network status changed", extra={"online": is_online})
        if not (was_offline and is_online and self.is_authenticated):
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; reconnect sync left to the next cycle")
            return None
        task = loop.create_task(self.sync_to_cloud())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_habit_by_id(self, habit_id: str) -> Optional[Habit]:
        return self.registry.get(habit_id)

    def get_habits_for_date(self, date: dates.DateLike) -> list[Habit]:
        day = self._normalize_date(date)
        return [habit for habit in self.registry.snapshot() if is_due_on(habit, day)]

    def get_completions_for_date(self, date: dates.DateLike) -> list[CompletionRecord]:
        return self.ledger.records_for_date(self._normalize_date(date))

    def can_complete(self, habit_id: str, date: dates.DateLike) -> bool:
        habit = self.registry.require(habit_id)
        return can_complete_on(habit, self._normalize_date(date), today=self._today())

    def missed_instances(self) -> list[MissedInstance]:
        return find_missed_instances(self.registry.snapshot(), self.ledger, today=self._today())

    def snapshot(self) -> LocalSnapshot:
        return LocalSnapshot(
            habits=list(self.registry.snapshot()),
            records=list(self.ledger.snapshot()),
            last_sync_at=self.last_sync_at,
            pending=list(self.pending),
        )

    def hydrate(self, snapshot: LocalSnapshot) -> None:
        """Load a persisted snapshot without inventing or recomputing anything."""

        self.registry.replace_all(snapshot.habits)
        self.ledger.replace_all(snapshot.records)
        self.last_sync_at = snapshot.last_sync_at
        self.pending = list(snapshot.pending)
        logger.debug(
            "Hydrated local snapshot",
            extra={"habits": len(snapshot.habits), "pending": len(snapshot.pending)},
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_habit(
        self,
        name: str,
        frequency: Frequency | str = Frequency.DAILY,
        *,
        days_of_week: list[int] | None = None,
        description: str | None = None,
        icon: str | None = None,
        color: str | None = None,
    ) -> Habit:
        user_id = self.require_user_id()
        fields = normalize_habit_fields(
            {
                "name": name,
                "frequency": frequency,
                "days_of_week": days_of_week or [],
                "description": description,
                "icon": icon or DEFAULT_ICON,
                "color": color or DEFAULT_COLOR,
            }
        )
        stamp = self._now_iso()
        draft = check_schedule(
            Habit(id=provisional_id(), user_id=user_id, created_at=stamp, updated_at=stamp, **fields)
        )
        payload = _jsonable({**fields, "days_of_week": draft.days_of_week, "user_id": user_id})

        async with self._lock_for(draft.id):
            mutation = self._begin("create", draft.id)
            self.registry.create(draft)
            self._optimistic(mutation)

            if not self.is_online:
                self._enqueue(mutation, "create", payload)
                return draft

            try:
                created = await self.remote.create_habit(dict(payload))
            except Exception as exc:
                self._drop_lock(draft.id)
                self._rollback(mutation, exc)

            self._drop_lock(draft.id)
            self.registry.rename_id(draft.id, created)
            self.ledger.reassign(draft.id, created.id)
            habit = self._adopt(created)
            self._confirm(mutation)
            return habit

    async def update_habit(self, habit_id: str, **changes: Any) -> Habit:
        self.require_user_id()
        self.registry.require(habit_id)
        fields = normalize_habit_fields(changes, allowed=EDITABLE_FIELDS)

        async with self._lock_for(habit_id):
            mutation = self._begin("update", habit_id)
            try:
                self.registry.update(habit_id, fields, updated_at=self._now_iso())
            except HabitEngineError:
                self._discard(mutation)
                raise
            # A frequency or schedule change invalidates the old streak.
            habit = self._refresh(habit_id)
            self._optimistic(mutation)

            if not self._goes_remote(habit_id):
                self._enqueue(mutation, "update", _jsonable(fields))
                return habit

            try:
                updated = await self.remote.update_habit(habit_id, _jsonable(fields))
            except Exception as exc:
                self._rollback(mutation, exc)

            habit = self._adopt(updated)
            self._confirm(mutation)
            return habit

    async def delete_habit(self, habit_id: str) -> None:
        self.require_user_id()
        self.registry.require(habit_id)

        async with self._lock_for(habit_id):
            self.registry.require(habit_id)
            mutation = self._begin("delete", habit_id)
            self.registry.delete(habit_id)
            self.ledger.remove_all_for_habit(habit_id)
            self._optimistic(mutation)

            if is_provisional(habit_id):
                # Never reached the remote store: dropping its queue is the whole job.
                self.pending = [op for op in self.pending if op.habit_id != habit_id]
                self._confirm(mutation)
                self._drop_lock(habit_id)
                return

            if not self._goes_remote(habit_id):
                self._enqueue(mutation, "delete", {})
                self._drop_lock(habit_id)
                return

            try:
                await self.remote.delete_habit(habit_id)
            except Exception as exc:
                self._rollback(mutation, exc)
            self._confirm(mutation)
            self._drop_lock(habit_id)

    async def toggle_completion(
        self,
        habit_id: str,
        date: dates.DateLike,
        note: str | None = None,
    ) -> CompletionRecord:
        """Flip completion of ``habit_id`` on ``date``; returns the resulting record."""

        self.require_user_id()
        self.registry.require(habit_id)
        day = self._normalize_date(date)

        async with self._lock_for(habit_id):
            self.registry.require(habit_id)
            mutation = self._begin("toggle", habit_id)
            record = self.ledger.toggle(habit_id, day, note)
            self._refresh(habit_id)
            self._optimistic(mutation)

            if not self._goes_remote(habit_id):
                self._enqueue(mutation, "toggle", {"date": day, "note": note})
                return record

            try:
                habit, confirmed = await self.remote.toggle_completion(habit_id, day, note)
            except Exception as exc:
                self._rollback(mutation, exc)

            self.ledger.upsert(confirmed)
            self._adopt(habit)
            self._confirm(mutation)
            return confirmed

    async def set_alternative_completion_date(
        self,
        habit_id: str,
        date: dates.DateLike,
        *,
        missed_date: dates.DateLike | None = None,
    ) -> Habit:
        """Designate ``date`` as the make-up for ``missed_date`` (default: yesterday)."""

        self.require_user_id()
        self.registry.require(habit_id)
        day = self._normalize_date(date)
        missed = self._normalize_date(missed_date) if missed_date is not None else dates.yesterday(self.clock())

        async with self._lock_for(habit_id):
            current = self.registry.require(habit_id)
            mutation = self._begin("update", habit_id)
            try:
                self.registry.set_alternative_completion_date(
                    habit_id, day, missed_date=missed, updated_at=self._now_iso()
                )
            except HabitEngineError:
                self._discard(mutation)
                raise
            if day in current.alternative_completion_dates:
                # Valid for this missed date and already stored.
                self._discard(mutation)
                return current
            habit = self._refresh(habit_id)
            self._optimistic(mutation)
            fields = {"alternative_completion_dates": list(habit.alternative_completion_dates)}

            if not self._goes_remote(habit_id):
                self._enqueue(mutation, "update", fields)
                return habit

            try:
                updated = await self.remote.update_habit(habit_id, fields)
            except Exception as exc:
                self._rollback(mutation, exc)

            habit = self._adopt(updated)
            self._confirm(mutation)
            return habit

    # ------------------------------------------------------------------
    # Full resync
    # ------------------------------------------------------------------

    async def fetch_habits(self) -> bool:
        """Replay queued offline work, then replace local state with the remote one.

        Returns False (and changes nothing) while offline.

        Raises:
            SyncFailed: replay or fetch failed; local state is left as it was.
        """

        user_id = self.require_user_id()
        if not self.is_online:
            logger.info("Offline; keeping local snapshot")
            return False

        await self._flush_pending()
        try:
            habits, records = await self.remote.fetch_all(user_id)
        except Exception as exc:
            logger.error("Error fetching habits", exc_info=True)
            raise SyncFailed("Failed to fetch habits") from exc

        self.ledger.replace_all(records)
        self.registry.replace_all(habits)
        for habit in habits:
            self._refresh(habit.id)
        self.last_sync_at = self._now_iso()
        self._persist()
        logger.info("Fetched habits", extra={"habits": len(habits), "records": len(records)})
        return True

    async def sync_to_cloud(self) -> bool:
        """Best-effort background reconciliation; failures are logged, never raised."""

        try:
            fetched = await self.fetch_habits()
        except Exception:
            logger.error("Background sync failed; retrying next cycle", exc_info=True)
            return False
        if fetched:
            self.last_sync_at = self._now_iso()
            self._persist()
        return fetched

    async def periodic_sync(self) -> bool:
        """Timer hook: sync when online, signed in and the last sync is stale.

        A session that never synced is left to ``start`` or ``sign_in``.
        """

        if not (self.is_online and self.is_authenticated):
            return False
        if self.last_sync_at is None or not self.should_sync():
            logger.debug("Skipping periodic sync; not due")
            return False
        return await self.sync_to_cloud()

    async def _flush_pending(self) -> None:
        while self.pending:
            op = self.pending[0]
            try:
                await self._replay(op)
            except NotFound:
                logger.warning(
                    "Dropping queued %s for habit %s; it no longer exists remotely",
                    op.kind,
                    op.habit_id,
                )
            except Exception as exc:
                self._persist()
                raise SyncFailed(
                    f"Failed to replay queued {op.kind} for habit {op.habit_id}",
                    habit_id=op.habit_id,
                ) from exc
            self.pending.pop(0)
            self._persist()

    async def _replay(self, op: PendingOperation) -> None:
        logger.debug("Replaying queued %s for habit %s", op.kind, op.habit_id)
        if op.kind == "create":
            created = await self.remote.create_habit(dict(op.payload))
            self._remap(op.habit_id, created)
        elif op.kind == "update":
            await self.remote.update_habit(op.habit_id, dict(op.payload))
        elif op.kind == "delete":
            await self.remote.delete_habit(op.habit_id)
        elif op.kind == "toggle":
            await self.remote.toggle_completion(
                op.habit_id, op.payload["date"], op.payload.get("note")
            )
        else:
            raise ValidationError(f"Unknown queued operation: {op.kind}")

    def _remap(self, old_id: str, created: Habit) -> None:
        """Point local data and the rest of the queue at the confirmed habit id."""

        self._drop_lock(old_id)
        if old_id in self.registry:
            self.registry.rename_id(old_id, created)
            self.ledger.reassign(old_id, created.id)
            self._adopt(created)
        # pending[0] is the create itself and is popped by the caller.
        self.pending = [self.pending[0]] + [
            op.with_habit_id(created.id) if op.habit_id == old_id else op
            for op in self.pending[1:]
        ]
        logger.info("Confirmed offline habit %s as %s", old_id, created.id)

    # ------------------------------------------------------------------
    # Life-cycle helpers
    # ------------------------------------------------------------------

    def _lock_for(self, habit_id: str) -> asyncio.Lock:
        return self._locks.setdefault(habit_id, asyncio.Lock())

    def _drop_lock(self, habit_id: str) -> None:
        """Forget the lock of an id that no longer names a live habit."""

        self._locks.pop(habit_id, None)

    def _goes_remote(self, habit_id: str) -> bool:
        """Queued work for a habit must reach the remote before anything newer."""

        return (
            self.is_online
            and not is_provisional(habit_id)
            and not any(op.habit_id == habit_id for op in self.pending)
        )

    def _begin(self, kind: str, habit_id: str) -> Mutation:
        mutation = Mutation(kind, habit_id, UndoSnapshot.capture(habit_id, self.registry, self.ledger))
        self.in_flight[mutation.id] = mutation
        return mutation

    def _optimistic(self, mutation: Mutation) -> None:
        mutation.state = MutationState.OPTIMISTIC
        logger.debug("Applied optimistic %s for habit %s", mutation.kind, mutation.habit_id)

    def _discard(self, mutation: Mutation) -> None:
        self.in_flight.pop(mutation.id, None)

    def _confirm(self, mutation: Mutation) -> None:
        mutation.state = MutationState.CONFIRMED
        self.in_flight.pop(mutation.id, None)
        self._persist()
        logger.debug("Confirmed %s for habit %s", mutation.kind, mutation.habit_id)

    def _enqueue(self, mutation: Mutation, kind: str, payload: dict[str, Any]) -> None:
        # No remote call in flight, so there is nothing to roll back later.
        self.in_flight.pop(mutation.id, None)
        self.pending.append(PendingOperation(kind, mutation.habit_id, payload, self._now_iso()))
        self._persist()
        logger.info(
            "Queued offline %s for habit %s",
            kind,
            mutation.habit_id,
            extra={"pending": len(self.pending)},
        )

    def _rollback(self, mutation: Mutation, exc: Exception) -> NoReturn:
        mutation.undo.restore(self.registry, self.ledger)
        self._refresh(mutation.habit_id)
        mutation.state = MutationState.ROLLED_BACK
        self.in_flight.pop(mutation.id, None)
        self._persist()
        logger.warning(
            "Remote %s failed for habit %s; reverted local changes",
            mutation.kind,
            mutation.habit_id,
            exc_info=exc,
        )
        raise SyncFailed(
            f"Failed to {mutation.kind} habit {mutation.habit_id}; changes were reverted",
            habit_id=mutation.habit_id,
        ) from exc

    def _refresh(self, habit_id: str) -> Optional[Habit]:
        """Re-derive completed dates and streaks for one habit from the ledger."""

        habit = self.registry.get(habit_id)
        if habit is None:
            return None
        completed = self.ledger.completed_dates(habit_id)
        result = streaks_for(habit, completed, today=self._today())
        return self.registry.put(
            habit.model_copy(
                update={
                    "completed_dates": completed,
                    "streak": result.current_streak,
                    "best_streak": result.best_streak,
                }
            )
        )

    def _adopt(self, habit: Habit) -> Habit:
        """Store an authoritative habit; completed dates still come from the ledger."""

        completed = self.ledger.completed_dates(habit.id)
        return self.registry.put(habit.model_copy(update={"completed_dates": completed}))

    def _persist(self) -> None:
        if self.snapshot_repo is not None:
            self.snapshot_repo.save(self.snapshot())

    def _normalize_date(self, value: dates.DateLike) -> str:
        try:
            return dates.to_local_date(value)
        except (AttributeError, TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid date: {value!r}") from exc

    def _today(self) -> str:
        return dates.today(self.clock())

    def _now_iso(self) -> str:
        return dates.now_iso(self.clock())


__all__ = [
    "Mutation",
    "MutationState",
    "SyncReconciler",
    "UndoSnapshot",
    "should_sync",
]
