from __future__ import annotations

from datetime import date

import pytest

from app.db.models import JudgmentSyncLog, SyncStatus
from app.services.scheduler import JudgmentSyncScheduler
from helpers import IN_WINDOW, make_payload


@pytest.fixture
def scheduler(sync_service, session_factory):
    return JudgmentSyncScheduler(
        sync_service=sync_service,
        session_factory=session_factory,
        hours=[1, 3],
        timezone="Asia/Taipei",
    )


def test_registers_primary_and_backup_jobs(scheduler):
    aps = scheduler.build("background")
    jobs = {job.id: job for job in aps.get_jobs()}

    assert set(jobs) == {"judgment_sync_primary", "judgment_sync_backup_3"}
    assert "hour='1'" in str(jobs["judgment_sync_primary"].trigger)
    assert "hour='3'" in str(jobs["judgment_sync_backup_3"].trigger)
    assert jobs["judgment_sync_primary"].max_instances == 1
    assert jobs["judgment_sync_primary"].misfire_grace_time == 300


def test_start_without_hours_does_nothing(sync_service, session_factory):
    idle = JudgmentSyncScheduler(sync_service=sync_service, session_factory=session_factory, hours=[])
    idle.start(kind="background")
    assert not idle.running


def test_start_and_shutdown(scheduler):
    scheduler.start(kind="background")
    try:
        assert scheduler.running
    finally:
        scheduler.shutdown()
    assert not scheduler.running


def test_backup_runs_when_primary_did_not_complete(scheduler, db):
    assert scheduler.should_run_backup(IN_WINDOW)

    db.add(JudgmentSyncLog(sync_date=date(2024, 1, 2), status=SyncStatus.failed))
    db.commit()
    assert scheduler.should_run_backup(IN_WINDOW)


def test_backup_skipped_after_completed_run(scheduler, db, registry):
    db.add(JudgmentSyncLog(sync_date=date(2024, 1, 2), status=SyncStatus.completed))
    db.commit()

    assert not scheduler.should_run_backup(IN_WINDOW)
    scheduler.run_backup(now=IN_WINDOW)
    assert registry.calls == []


def test_backup_skipped_while_sync_active(scheduler, sync_service):
    sync_service.latch.try_acquire("judgment_sync")
    assert not scheduler.should_run_backup(IN_WINDOW)


def test_backup_runs_sync(scheduler, registry, db):
    registry.list_response = ["J1"]
    registry.docs["J1"] = make_payload("J1")

    scheduler.run_backup(now=IN_WINDOW)

    run = db.query(JudgmentSyncLog).one()
    assert run.status == SyncStatus.completed
    assert run.trigger_source == "scheduled"
