"""
services/scheduler.py

Cron schedule for the nightly judgment sync.

Jobs (Asia/Taipei, hours from JUDGMENT_SYNC_CRON_HOURS, default "1,3"):
  1. judgment_sync_primary  at the first hour
     - regular sync run
  2. judgment_sync_backup_N at each later hour
     - runs only when no sync is active and today's run has not completed

The API process uses an AsyncIOScheduler from its lifespan:

    judgment_sync_scheduler.start()
    yield
    judgment_sync_scheduler.shutdown()

The CLI (`python -m jobs.judgment_sync_job schedule`) uses a BlockingScheduler.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.database import SessionLocal
from app.db.models import SyncStatus, SyncTriggerSource
from app.services.judgment_sync_service import JudgmentSyncService, judgment_sync_service

logger = logging.getLogger(__name__)

SCHEDULER_KINDS = {
    "asyncio": AsyncIOScheduler,
    "background": BackgroundScheduler,
    "blocking": BlockingScheduler,
}


class JudgmentSyncScheduler:
    def __init__(
        self,
        sync_service: JudgmentSyncService | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        hours: List[int] | None = None,
        timezone: str | None = None,
    ) -> None:
        self.sync_service = sync_service or judgment_sync_service
        self.session_factory = session_factory
        self.hours = hours if hours is not None else settings.sync_cron_hours
        self.timezone = timezone or settings.JUDICIAL_TIMEZONE
        self._scheduler: BaseScheduler | None = None

    @property
    def running(self) -> bool:
        return bool(self._scheduler and self._scheduler.running)

    def build(self, kind: str = "asyncio") -> BaseScheduler:
        scheduler = SCHEDULER_KINDS[kind](timezone=self.timezone)
        for position, hour in enumerate(self.hours):
            backup = position > 0
            scheduler.add_job(
                self.run_backup if backup else self.run_primary,
                trigger=CronTrigger(hour=hour, minute=0, timezone=self.timezone),
                id=f"judgment_sync_backup_{hour}" if backup else "judgment_sync_primary",
                name=f"Judgment sync ({'backup' if backup else 'primary'}, {hour:02d}:00)",
                replace_existing=True,
                max_instances=1,
                misfire_grace_time=300,
            )
        return scheduler

    def start(self, kind: str = "asyncio") -> None:
        """
        Register the cron jobs and start. With kind="blocking" this call does
        not return until shutdown() is called from another thread or a signal.
        """
        if self.running:
            return
        if not self.hours:
            logger.warning("Judgment sync scheduler has no cron hours configured, not starting")
            return
        self._scheduler = self.build(kind)
        logger.info(
            "Judgment sync scheduler started at %s (%s)",
            ", ".join(f"{h:02d}:00" for h in self.hours), self.timezone,
        )
        self._scheduler.start()

    def shutdown(self) -> None:
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Judgment sync scheduler shut down")
        self._scheduler = None

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def run_primary(self) -> None:
        logger.info("Job: judgment_sync_primary - starting")
        outcome = self.sync_service.run_sync(trigger_source=SyncTriggerSource.scheduled)
        logger.info("Job: judgment_sync_primary - %s", outcome.status)

    def run_backup(self, now: datetime | None = None) -> None:
        if not self.should_run_backup(now):
            logger.info("Job: judgment_sync_backup - not needed, skipping")
            return
        logger.info("Job: judgment_sync_backup - starting")
        outcome = self.sync_service.run_sync(trigger_source=SyncTriggerSource.scheduled, now=now)
        logger.info("Job: judgment_sync_backup - %s", outcome.status)

    def should_run_backup(self, now: datetime | None = None) -> bool:
        if self.sync_service.latch.is_held:
            return False
        today = self.sync_service.window.local_now(now).date()
        db = self.session_factory()
        try:
            run = self.sync_service.tracker.run_for_date(db, today)
            return run is None or run.status != SyncStatus.completed
        finally:
            db.close()


judgment_sync_scheduler = JudgmentSyncScheduler()
