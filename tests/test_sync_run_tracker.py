from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from app.db.models import JudgmentSyncLog, SyncStatus, SyncTriggerSource
from app.services.sync_run_tracker import RunLatch, SyncCounters, SyncRunTracker
from app.utils.exceptions import InvalidRunTransition, SyncAlreadyRunning

NOW = datetime(2024, 1, 1, 18, 0)
TODAY = date(2024, 1, 2)


@pytest.fixture
def tracker():
    return SyncRunTracker(stale_after=timedelta(minutes=30), clock=lambda: NOW)


# ── Latch ─────────────────────────────────────────────────────────────────────


def test_latch_is_single_flight():
    latch = RunLatch()
    assert latch.try_acquire("judgment_sync")
    assert not latch.try_acquire("historical_import")
    assert latch.holder == "judgment_sync"
    latch.release()
    assert not latch.is_held
    assert latch.try_acquire("historical_import")


def test_latch_hold_refuses_and_releases():
    latch = RunLatch()
    with latch.hold("judgment_sync"):
        with pytest.raises(SyncAlreadyRunning):
            with latch.hold("historical_import"):
                pass
    assert not latch.is_held


# ── Run rows ──────────────────────────────────────────────────────────────────


def test_begin_creates_running_row(tracker, db):
    run = tracker.begin(db, TODAY, SyncTriggerSource.manual)
    assert run.status == SyncStatus.running
    assert run.trigger_source == "manual"
    assert run.started_at == NOW
    assert run.heartbeat_at == NOW
    assert run.total_fetched == 0


def test_rerun_same_day_reuses_and_resets_row(tracker, db):
    run = tracker.begin(db, TODAY)
    tracker.finish(db, run.id, SyncStatus.failed, error_message="boom", counters={"total_fetched": 7, "errors": 7})

    again = tracker.begin(db, TODAY)
    assert again.id == run.id
    assert again.status == SyncStatus.running
    assert again.total_fetched == 0
    assert again.errors == 0
    assert again.error_message is None
    assert again.completed_at is None
    assert db.query(JudgmentSyncLog).count() == 1


def test_begin_refuses_while_fresh_run_exists(tracker, db):
    db.add(JudgmentSyncLog(
        sync_date=TODAY - timedelta(days=1),
        status=SyncStatus.running,
        started_at=NOW - timedelta(minutes=40),
        heartbeat_at=NOW - timedelta(minutes=5),
    ))
    db.commit()
    with pytest.raises(SyncAlreadyRunning):
        tracker.begin(db, TODAY)


def test_stale_running_row_is_failed_then_begin_proceeds(tracker, db):
    db.add(JudgmentSyncLog(
        sync_date=TODAY - timedelta(days=1),
        status=SyncStatus.running,
        started_at=NOW - timedelta(hours=3),
        heartbeat_at=NOW - timedelta(minutes=31),
    ))
    db.commit()

    run = tracker.begin(db, TODAY)
    assert run.status == SyncStatus.running

    stale = tracker.run_for_date(db, TODAY - timedelta(days=1))
    assert stale.status == SyncStatus.failed
    assert stale.error_message.startswith("abandoned")
    assert stale.completed_at == NOW


def test_progress_is_monotonic_and_refreshes_heartbeat(tracker, db):
    run = tracker.begin(db, TODAY)
    tracker.record_progress(db, run.id, SyncCounters(total_fetched=10, new_records=5))
    later = NOW + timedelta(minutes=2)
    tracker.record_progress(db, run.id, {"new_records": 3, "errors": 1}, now=later)

    row = tracker.run_for_date(db, TODAY)
    assert row.total_fetched == 10
    assert row.new_records == 5
    assert row.errors == 1
    assert row.heartbeat_at == later


def test_finish_happens_exactly_once(tracker, db):
    run = tracker.begin(db, TODAY)
    done = tracker.finish(db, run.id, SyncStatus.completed, counters=SyncCounters(total_fetched=2, new_records=2))
    assert done.status == SyncStatus.completed
    assert done.completed_at == NOW

    with pytest.raises(InvalidRunTransition):
        tracker.finish(db, run.id, SyncStatus.failed, error_message="late")
    with pytest.raises(InvalidRunTransition):
        tracker.record_progress(db, run.id, {"errors": 1})
    assert tracker.run_for_date(db, TODAY).status == SyncStatus.completed


def test_finish_requires_terminal_status(tracker, db):
    run = tracker.begin(db, TODAY)
    with pytest.raises(InvalidRunTransition):
        tracker.finish(db, run.id, SyncStatus.running)


def test_recent_runs_newest_first(tracker, db):
    for offset in range(12):
        db.add(JudgmentSyncLog(sync_date=TODAY - timedelta(days=offset), status=SyncStatus.completed))
    db.commit()
    runs = tracker.recent_runs(db, limit=10)
    assert len(runs) == 10
    assert runs[0].sync_date == TODAY
    assert runs[-1].sync_date == TODAY - timedelta(days=9)


def test_counter_conservation_helper():
    counters = SyncCounters(total_fetched=5, new_records=2, updated_records=1, skipped_records=1, errors=1)
    assert counters.accounted == counters.total_fetched
