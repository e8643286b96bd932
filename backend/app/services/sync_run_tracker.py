"""
services/sync_run_tracker.py

Run bookkeeping for the regular judgment sync.

- RunLatch: in-process single-flight latch shared by regular sync and backfill.
- SyncRunTracker: one JudgmentSyncLog row per calendar day. begin() upserts the
  day's row back to `running`, record_progress() writes counters after each
  batch and refreshes the heartbeat, finish() moves the row to a terminal state
  exactly once.

A `running` row whose heartbeat is older than JUDGMENT_SYNC_STALE_AFTER_MINUTES
is treated as abandoned (crashed process) and failed on the next begin().
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logger import logger
from app.db.models import JudgmentSyncLog, SyncStatus, SyncTriggerSource
from app.utils.exceptions import InvalidRunTransition, PersistenceError, SyncAlreadyRunning
from app.utils.helpers import utc_now

ABANDONED_MESSAGE = "abandoned: no heartbeat for {minutes} minutes"
TERMINAL_STATUSES = (SyncStatus.completed, SyncStatus.failed)


@dataclass
class SyncCounters:
    total_fetched: int = 0
    new_records: int = 0
    updated_records: int = 0
    skipped_records: int = 0
    errors: int = 0

    @property
    def accounted(self) -> int:
        return self.new_records + self.updated_records + self.skipped_records + self.errors

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


COUNTER_FIELDS = tuple(SyncCounters.__dataclass_fields__)


# ============================================================================
# Single-flight latch
# ============================================================================

class RunLatch:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holder: Optional[str] = None

    def try_acquire(self, holder: str) -> bool:
        with self._lock:
            if self._holder is not None:
                return False
            self._holder = holder
            return True

    def release(self) -> None:
        with self._lock:
            self._holder = None

    @property
    def is_held(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @contextmanager
    def hold(self, holder: str) -> Iterator[None]:
        if not self.try_acquire(holder):
            raise SyncAlreadyRunning(f"{self.holder} is already running")
        try:
            yield
        finally:
            self.release()


# ============================================================================
# Run rows
# ============================================================================

def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise PersistenceError(f"unsupported database dialect {dialect!r}")


class SyncRunTracker:
    def __init__(
        self,
        stale_after: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.stale_after = stale_after or timedelta(minutes=settings.JUDGMENT_SYNC_STALE_AFTER_MINUTES)
        self.clock = clock

    def _is_stale(self, run: JudgmentSyncLog, now: datetime) -> bool:
        last_seen = run.heartbeat_at or run.started_at or run.updated_at
        return last_seen is None or now - last_seen > self.stale_after

    def recover_stale_runs(self, db: Session, now: datetime | None = None) -> int:
        """Fail every `running` row whose heartbeat is older than the staleness threshold."""
        now = now or self.clock()
        recovered = 0
        try:
            for run in db.query(JudgmentSyncLog).filter(JudgmentSyncLog.status == SyncStatus.running).all():
                if not self._is_stale(run, now):
                    continue
                run.status = SyncStatus.failed
                run.completed_at = now
                run.error_message = ABANDONED_MESSAGE.format(
                    minutes=int(self.stale_after.total_seconds() // 60)
                )
                recovered += 1
                logger.warning("Sync run %s (%s) abandoned, marking failed", run.id, run.sync_date)
            if recovered:
                db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"could not recover stale sync runs: {exc}") from exc
        return recovered

    def begin(
        self,
        db: Session,
        sync_date: date,
        trigger_source: SyncTriggerSource | str = SyncTriggerSource.scheduled,
        now: datetime | None = None,
    ) -> JudgmentSyncLog:
        now = now or self.clock()
        source = SyncTriggerSource(trigger_source).value

        self.recover_stale_runs(db, now)
        active = self.active_run(db)
        if active is not None:
            raise SyncAlreadyRunning(f"sync run {active.id} for {active.sync_date} is still running")

        table = JudgmentSyncLog.__table__
        reset = {
            "status": SyncStatus.running,
            "trigger_source": source,
            "started_at": now,
            "heartbeat_at": now,
            "completed_at": None,
            "error_message": None,
            "updated_at": now,
            **SyncCounters().as_dict(),
        }
        try:
            insert = _insert_for(db)
            stmt = insert(table).values(sync_date=sync_date, created_at=now, **reset)
            stmt = stmt.on_conflict_do_update(index_elements=[table.c.sync_date], set_=reset)
            db.execute(stmt)
            db.commit()
            run = db.query(JudgmentSyncLog).filter(JudgmentSyncLog.sync_date == sync_date).one()
            db.refresh(run)
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"could not start sync run for {sync_date}: {exc}") from exc

        logger.info("Sync run %s started for %s (%s)", run.id, sync_date, source)
        return run

    def _running(self, db: Session, run_id: int) -> JudgmentSyncLog:
        run = db.get(JudgmentSyncLog, run_id)
        if run is None:
            raise InvalidRunTransition(f"sync run {run_id} does not exist")
        if run.status in TERMINAL_STATUSES:
            raise InvalidRunTransition(f"sync run {run_id} is already {run.status.value}")
        return run

    @staticmethod
    def _apply_counters(run: JudgmentSyncLog, counters: SyncCounters | Dict[str, int] | None) -> None:
        if counters is None:
            return
        values = counters.as_dict() if isinstance(counters, SyncCounters) else counters
        for name in COUNTER_FIELDS:
            if name in values:
                # counters only move forward
                setattr(run, name, max(getattr(run, name) or 0, int(values[name])))

    def record_progress(
        self,
        db: Session,
        run_id: int,
        counters: SyncCounters | Dict[str, int],
        now: datetime | None = None,
    ) -> JudgmentSyncLog:
        try:
            run = self._running(db, run_id)
            self._apply_counters(run, counters)
            run.heartbeat_at = now or self.clock()
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"could not record progress for sync run {run_id}: {exc}") from exc
        return run

    def finish(
        self,
        db: Session,
        run_id: int,
        status: SyncStatus,
        error_message: str | None = None,
        counters: SyncCounters | Dict[str, int] | None = None,
        now: datetime | None = None,
    ) -> JudgmentSyncLog:
        if status not in TERMINAL_STATUSES:
            raise InvalidRunTransition(f"{status} is not a terminal status")
        now = now or self.clock()
        try:
            run = self._running(db, run_id)
            self._apply_counters(run, counters)
            run.status = status
            run.error_message = error_message
            run.completed_at = now
            run.heartbeat_at = now
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"could not finish sync run {run_id}: {exc}") from exc
        logger.info("Sync run %s %s", run_id, status.value)
        return run

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def active_run(self, db: Session) -> JudgmentSyncLog | None:
        return (
            db.query(JudgmentSyncLog)
            .filter(JudgmentSyncLog.status == SyncStatus.running)
            .order_by(JudgmentSyncLog.started_at.desc())
            .first()
        )

    def run_for_date(self, db: Session, sync_date: date) -> JudgmentSyncLog | None:
        return db.query(JudgmentSyncLog).filter(JudgmentSyncLog.sync_date == sync_date).first()

    def recent_runs(self, db: Session, limit: int = 10) -> List[JudgmentSyncLog]:
        return (
            db.query(JudgmentSyncLog)
            .order_by(JudgmentSyncLog.sync_date.desc())
            .limit(limit)
            .all()
        )


run_latch = RunLatch()
sync_run_tracker = SyncRunTracker()
