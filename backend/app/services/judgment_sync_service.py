"""
services/judgment_sync_service.py

The regular nightly sync:

  gate -> token -> JList -> batches of JUDGMENT_SYNC_BATCH_SIZE
        -> per jid: JDoc -> parse/classify -> reconcile
        -> counters persisted after every batch -> completed | failed

Per-item failures (fetch errors after retries) are counted and the run goes on.
Auth failures, list failures, storage failures and anything unexpected end the
run as failed. Outside the service window nothing is fetched and no run row
is touched.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logger import logger
from app.db.database import SessionLocal
from app.db.models import SyncStatus, SyncTriggerSource
from app.services.judgment_parser import parse_judgment
from app.services.judgment_store import JudgmentStore, judgment_store
from app.services.judicial_api_service import JudicialApiService, judicial_api_service
from app.services.service_window import ServiceWindow, service_window
from app.services.sync_run_tracker import (
    RunLatch,
    SyncCounters,
    SyncRunTracker,
    run_latch,
    sync_run_tracker,
)
from app.services.token_manager import TokenManager, token_manager
from app.utils.exceptions import (
    FetchError,
    ParseError,
    PersistenceError,
    ServiceWindowClosed,
    SyncAlreadyRunning,
)

LATCH_HOLDER = "judgment_sync"

OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"
OUTCOME_WINDOW_CLOSED = "service_window_closed"
OUTCOME_ALREADY_RUNNING = "already_running"

ITEM_SKIPPED = "skipped"
ITEM_ERROR = "error"


@dataclass
class SyncOutcome:
    status: str
    run_id: Optional[int] = None
    counters: SyncCounters = field(default_factory=SyncCounters)
    error_message: Optional[str] = None
    message: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "run_id": self.run_id,
            "error_message": self.error_message,
            "message": self.message,
            **self.counters.as_dict(),
        }


def _start_daemon_thread(fn: Callable[[], Any]) -> None:
    threading.Thread(target=fn, name="judgment-sync", daemon=True).start()


def _chunks(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class JudgmentSyncService:
    def __init__(
        self,
        api: JudicialApiService | None = None,
        tokens: TokenManager | None = None,
        store: JudgmentStore | None = None,
        tracker: SyncRunTracker | None = None,
        window: ServiceWindow | None = None,
        latch: RunLatch | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        launcher: Callable[[Callable[[], Any]], None] = _start_daemon_thread,
    ) -> None:
        self.api = api or judicial_api_service
        self.tokens = tokens or token_manager
        self.store = store or judgment_store
        self.tracker = tracker or sync_run_tracker
        self.window = window or service_window
        self.latch = latch or run_latch
        self.session_factory = session_factory
        self.batch_size = batch_size or settings.JUDGMENT_SYNC_BATCH_SIZE
        self.batch_delay = settings.JUDGMENT_SYNC_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        self.sleep = sleep
        self.launcher = launcher
        self.current_run_id: Optional[int] = None

    # ------------------------------------------------------------------
    # Per-item pipeline (shared with the historical import)
    # ------------------------------------------------------------------

    def process_judgment(self, db: Session, jid: str, token: str) -> str:
        """
        Fetch, parse, classify and store one judgment.
        Returns "new", "updated", "skipped" (registry no longer has it) or "error".
        AuthError and PersistenceError propagate: both end the run.
        """
        try:
            raw = self.api.fetch_detail(jid, token)
        except (FetchError, ParseError) as exc:
            logger.warning("Judgment %s failed: %s", jid, exc)
            return ITEM_ERROR

        if raw is None:
            logger.info("Judgment %s not found in registry, skipping", jid)
            return ITEM_SKIPPED

        parsed = parse_judgment(raw, jid)
        return self.store.reconcile(db, jid, parsed, raw)

    @staticmethod
    def count(counters: SyncCounters, result: str) -> None:
        if result == "new":
            counters.new_records += 1
        elif result == "updated":
            counters.updated_records += 1
        elif result == ITEM_SKIPPED:
            counters.skipped_records += 1
        else:
            counters.errors += 1

    # ------------------------------------------------------------------
    # Regular run
    # ------------------------------------------------------------------

    def run_sync(
        self,
        force: bool = False,
        trigger_source: SyncTriggerSource = SyncTriggerSource.scheduled,
        now: datetime | None = None,
    ) -> SyncOutcome:
        """Run one sync to completion in the calling thread."""
        if not self.window.is_available(now=now, force=force):
            logger.info("Judicial registry outside service window (%s), sync skipped", self.window.describe())
            return SyncOutcome(status=OUTCOME_WINDOW_CLOSED, message=f"service window is {self.window.describe()}")

        if not self.latch.try_acquire(LATCH_HOLDER):
            logger.info("Sync skipped, %s is already running", self.latch.holder)
            return SyncOutcome(status=OUTCOME_ALREADY_RUNNING, message=f"{self.latch.holder} is running")

        return self._run_holding_latch(force, trigger_source, now)

    def _run_holding_latch(
        self,
        force: bool,
        trigger_source: SyncTriggerSource,
        now: datetime | None,
    ) -> SyncOutcome:
        db = self.session_factory()
        try:
            return self._run(db, force, trigger_source, now)
        finally:
            self.current_run_id = None
            db.close()
            self.latch.release()

    def _run(
        self,
        db: Session,
        force: bool,
        trigger_source: SyncTriggerSource,
        now: datetime | None,
    ) -> SyncOutcome:
        sync_date = self.window.local_now(now).date()
        try:
            run = self.tracker.begin(db, sync_date, trigger_source)
        except SyncAlreadyRunning as exc:
            logger.info("Sync skipped: %s", exc)
            return SyncOutcome(status=OUTCOME_ALREADY_RUNNING, message=str(exc))
        except PersistenceError as exc:
            logger.exception("Could not open sync run for %s", sync_date)
            return SyncOutcome(status=OUTCOME_FAILED, error_message=str(exc))

        run_id = run.id
        self.current_run_id = run_id
        counters = SyncCounters()
        logger.info("Judgment sync %s started (%s)", run_id, sync_date)

        try:
            token = self.tokens.get_token()
            jids = self.api.list_changed_ids(token)
            counters.total_fetched = len(jids)
            self.tracker.record_progress(db, run_id, counters)

            batches = _chunks(jids, self.batch_size)
            for index, batch in enumerate(batches, start=1):
                if index > 1:
                    self.sleep(self.batch_delay)
                    if not self.window.is_available(now=now, force=force):
                        raise ServiceWindowClosed(
                            f"service window {self.window.describe()} closed after {index - 1} of {len(batches)} batches"
                        )
                for jid in batch:
                    self.count(counters, self.process_judgment(db, jid, token))
                self.tracker.record_progress(db, run_id, counters)
                logger.info(
                    "Batch %d/%d done: new=%d updated=%d skipped=%d errors=%d",
                    index, len(batches), counters.new_records, counters.updated_records,
                    counters.skipped_records, counters.errors,
                )

            self.tracker.finish(db, run_id, SyncStatus.completed, counters=counters)
            logger.info(
                "Judgment sync %s completed: %d fetched, %d new, %d updated, %d skipped, %d errors",
                run_id, counters.total_fetched, counters.new_records, counters.updated_records,
                counters.skipped_records, counters.errors,
            )
            return SyncOutcome(status=OUTCOME_COMPLETED, run_id=run_id, counters=counters)

        except Exception as exc:
            message = f"{type(exc).__name__}: {exc}"
            if isinstance(exc, ServiceWindowClosed):
                logger.warning("Judgment sync %s stopped: %s", run_id, exc)
            else:
                logger.exception("Judgment sync %s failed", run_id)
            try:
                self.tracker.finish(db, run_id, SyncStatus.failed, error_message=message, counters=counters)
            except Exception:
                logger.exception("Could not mark sync run %s failed", run_id)
            return SyncOutcome(status=OUTCOME_FAILED, run_id=run_id, counters=counters, error_message=message)

    # ------------------------------------------------------------------
    # Manual trigger
    # ------------------------------------------------------------------

    def trigger_sync(self, force: bool = False, now: datetime | None = None) -> Dict[str, Any]:
        """
        Acknowledge immediately: the run itself goes to the launcher (a daemon
        thread by default). The latch is taken here so a second trigger racing
        this one is refused before any thread starts.
        """
        if not self.window.is_available(now=now, force=force):
            return {
                "status": OUTCOME_WINDOW_CLOSED,
                "message": f"Judicial registry only accepts requests during {self.window.describe()}",
            }
        if not self.latch.try_acquire(LATCH_HOLDER):
            return {
                "status": OUTCOME_ALREADY_RUNNING,
                "message": "A sync job is already running",
                "active_job": self.latch.holder,
            }

        try:
            self.launcher(lambda: self._run_holding_latch(force, SyncTriggerSource.manual, now))
        except Exception:
            self.latch.release()
            raise
        logger.info("Manual judgment sync started (force=%s)", force)
        return {"status": "started", "message": "Sync started, check /status for progress"}

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self, db: Session, now: datetime | None = None) -> Dict[str, Any]:
        active = self.tracker.active_run(db)
        return {
            "is_running": self.latch.is_held or active is not None,
            "active_job": self.latch.holder,
            "current_sync_id": self.current_run_id or (active.id if active else None),
            "is_api_available": self.window.is_available(now=now),
            "service_window": self.window.describe(),
            "recent_logs": self.tracker.recent_runs(db, limit=10),
        }


judgment_sync_service = JudgmentSyncService()
