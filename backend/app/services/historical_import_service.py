"""
services/historical_import_service.py

Operator-driven backfill of judgments the nightly sync never saw.

Two modes, both running the same per-item pipeline as the regular sync:

  batch    re-list changed ids up to max_batches times, process ids not seen
           earlier in this backfill, stop when a listing brings nothing new
  company  search the registry for a company name and import the hits

Resumable: a jid whose stored row already has full text is counted as skipped
without a network call, unless refresh=True. Holds the same single-flight latch
as the regular sync, so a backfill and a sync never overlap.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from sqlalchemy.orm import Session

from app.core.logger import logger
from app.db.database import SessionLocal
from app.services.judgment_store import JudgmentStore, judgment_store
from app.services.judgment_sync_service import ITEM_SKIPPED, JudgmentSyncService, judgment_sync_service
from app.services.judicial_api_service import JudicialApiService, judicial_api_service
from app.services.service_window import ServiceWindow, service_window
from app.services.sync_run_tracker import RunLatch, run_latch
from app.services.token_manager import TokenManager, token_manager
from app.utils.exceptions import FetchError, ParseError
from app.utils.helpers import utc_now

LATCH_HOLDER = "historical_import"

MODE_BATCH = "batch"
MODE_COMPANY = "company"

STATUS_IDLE = "idle"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_WINDOW_CLOSED = "service_window_closed"
STATUS_ALREADY_RUNNING = "already_running"


@dataclass
class BackfillStats:
    mode: Optional[str] = None
    status: str = STATUS_IDLE
    total_processed: int = 0
    new_records: int = 0
    updated_records: int = 0
    skipped_records: int = 0
    errors: int = 0
    current_batch: int = 0
    total_batches: int = 0
    current_batch_size: int = 0
    current_batch_processed: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    message: Optional[str] = None

    def count(self, result: str) -> None:
        self.total_processed += 1
        self.current_batch_processed += 1
        if result == "new":
            self.new_records += 1
        elif result == "updated":
            self.updated_records += 1
        elif result == ITEM_SKIPPED:
            self.skipped_records += 1
        else:
            self.errors += 1

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class HistoricalImportService:
    def __init__(
        self,
        sync_service: JudgmentSyncService | None = None,
        api: JudicialApiService | None = None,
        tokens: TokenManager | None = None,
        store: JudgmentStore | None = None,
        window: ServiceWindow | None = None,
        latch: RunLatch | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.sync_service = sync_service or judgment_sync_service
        self.api = api or judicial_api_service
        self.tokens = tokens or token_manager
        self.store = store or judgment_store
        self.window = window or service_window
        self.latch = latch or run_latch
        self.session_factory = session_factory
        self.sleep = sleep
        self.clock = clock
        self.stats = BackfillStats()

    @property
    def is_running(self) -> bool:
        return self.stats.status == STATUS_RUNNING

    def get_stats(self) -> Dict[str, Any]:
        return {"is_running": self.is_running, **self.stats.as_dict()}

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------

    def _start(self, mode: str, force: bool, now: datetime | None) -> Optional[BackfillStats]:
        """Gate and latch checks; returns a refusal, or None when the backfill may start."""
        if not self.window.is_available(now=now, force=force):
            logger.info("Historical import refused: registry window is %s", self.window.describe())
            return BackfillStats(
                mode=mode,
                status=STATUS_WINDOW_CLOSED,
                message=f"Judicial registry only accepts requests during {self.window.describe()}",
            )
        if not self.latch.try_acquire(LATCH_HOLDER):
            logger.info("Historical import refused: %s is running", self.latch.holder)
            return BackfillStats(
                mode=mode,
                status=STATUS_ALREADY_RUNNING,
                message=f"{self.latch.holder} is already running",
            )
        self.stats = BackfillStats(mode=mode, status=STATUS_RUNNING, started_at=self.clock())
        return None

    def _process(self, db: Session, jid: str, token: str, refresh: bool) -> str:
        if not refresh and self.store.has_content(db, jid):
            return ITEM_SKIPPED
        return self.sync_service.process_judgment(db, jid, token)

    def _finish(self, status: str, message: str | None) -> BackfillStats:
        self.stats.status = status
        self.stats.message = message
        self.stats.finished_at = self.clock()
        logger.info(
            "Historical import (%s) %s: processed=%d new=%d updated=%d skipped=%d errors=%d",
            self.stats.mode, status, self.stats.total_processed, self.stats.new_records,
            self.stats.updated_records, self.stats.skipped_records, self.stats.errors,
        )
        return self.stats

    def _window_closed(self, force: bool, now: datetime | None) -> bool:
        return not self.window.is_available(now=now, force=force)

    # ------------------------------------------------------------------
    # Batch mode
    # ------------------------------------------------------------------

    def import_batches(
        self,
        batch_size: int = 50,
        max_batches: int = 20,
        batch_delay: float = 3.0,
        request_delay: float = 0.1,
        force: bool = False,
        refresh: bool = False,
        now: datetime | None = None,
    ) -> BackfillStats:
        if batch_size < 1 or max_batches < 1:
            raise ValueError("batch_size and max_batches must be positive")

        refused = self._start(MODE_BATCH, force, now)
        if refused:
            return refused

        self.stats.total_batches = max_batches
        logger.info("Historical import started: up to %d batches of %d", max_batches, batch_size)
        db = self.session_factory()
        try:
            token = self.tokens.get_token()
            seen: Set[str] = set()
            message = f"finished {max_batches} batches"

            for batch_no in range(1, max_batches + 1):
                if batch_no > 1:
                    self.sleep(batch_delay)
                    if self._window_closed(force, now):
                        return self._finish(STATUS_FAILED, f"service window closed before batch {batch_no}")

                self.stats.current_batch = batch_no
                self.stats.current_batch_processed = 0
                try:
                    listed = self.api.list_changed_ids(token)
                except (FetchError, ParseError) as exc:
                    logger.warning("Historical import batch %d: listing failed: %s", batch_no, exc)
                    self.stats.errors += 1
                    self.stats.current_batch_size = 0
                    continue

                fresh = [jid for jid in listed if jid not in seen][:batch_size]
                if not fresh:
                    message = f"no unseen judgments after {batch_no - 1} batches"
                    break
                seen.update(fresh)
                self.stats.current_batch_size = len(fresh)

                for index, jid in enumerate(fresh):
                    if index and request_delay > 0:
                        self.sleep(request_delay)
                    self.stats.count(self._process(db, jid, token, refresh))

                logger.info(
                    "Historical import batch %d/%d: %d judgments, %d processed so far",
                    batch_no, max_batches, len(fresh), self.stats.total_processed,
                )

            return self._finish(STATUS_COMPLETED, message)

        except Exception as exc:
            logger.exception("Historical import failed")
            return self._finish(STATUS_FAILED, f"{type(exc).__name__}: {exc}")
        finally:
            db.close()
            self.latch.release()

    # ------------------------------------------------------------------
    # Company mode
    # ------------------------------------------------------------------

    def import_by_company(
        self,
        company_name: str,
        max_records: int = 100,
        delay: float = 2.0,
        force: bool = False,
        refresh: bool = False,
        now: datetime | None = None,
    ) -> BackfillStats:
        if max_records < 1:
            raise ValueError("max_records must be positive")

        refused = self._start(MODE_COMPANY, force, now)
        if refused:
            return refused

        logger.info("Historical import for company %r started (max %d)", company_name, max_records)
        db = self.session_factory()
        try:
            token = self.tokens.get_token()
            jids: List[str] = self.api.search_judgment_ids(company_name, token, top=max_records)
            self.stats.total_batches = 1
            self.stats.current_batch = 1
            self.stats.current_batch_size = len(jids)

            for index, jid in enumerate(jids):
                if index:
                    self.sleep(delay)
                    if self._window_closed(force, now):
                        return self._finish(STATUS_FAILED, f"service window closed after {index} judgments")
                self.stats.count(self._process(db, jid, token, refresh))

            return self._finish(STATUS_COMPLETED, f"{len(jids)} judgments found for {company_name}")

        except Exception as exc:
            logger.exception("Historical import for company %r failed", company_name)
            return self._finish(STATUS_FAILED, f"{type(exc).__name__}: {exc}")
        finally:
            db.close()
            self.latch.release()


historical_import_service = HistoricalImportService()
