"""Tests for interval job registration."""

from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler

from chainnotes.config import SyncConfig
from chainnotes.scheduler import PENDING_JOB_ID, SCAN_JOB_ID, SYNC_JOB_ID, ReconciliationScheduler
from chainnotes.transactions import SyncSummary, SyncWorker


def _scheduler(indexer, sync_worker, indexer_config, sync_config):
    return ReconciliationScheduler(
        indexer, sync_worker, indexer_config, sync_config, scheduler=BackgroundScheduler(timezone="UTC")
    )


def test_jobs_never_overlap(store, ledger, indexer, indexer_config, sync_config, lifecycle):
    worker = SyncWorker(store, ledger, sync_config, lifecycle=lifecycle)
    sched = _scheduler(indexer, worker, indexer_config, sync_config)

    jobs = {job.id: job for job in sched.scheduler.get_jobs()}

    assert set(jobs) == {SCAN_JOB_ID, PENDING_JOB_ID, SYNC_JOB_ID}
    for job in jobs.values():
        assert job.max_instances == 1
        assert job.coalesce is True
    assert jobs[SCAN_JOB_ID].trigger.interval == timedelta(seconds=indexer_config.poll_interval_seconds)
    assert jobs[SYNC_JOB_ID].trigger.interval == timedelta(seconds=sync_config.interval_seconds)


def test_disabled_components_register_no_jobs(store, ledger, indexer, indexer_config, lifecycle):
    sync_config = SyncConfig(enabled=False)
    worker = SyncWorker(store, ledger, sync_config, lifecycle=lifecycle)
    config = indexer_config.model_copy(update={"enabled": False})

    sched = _scheduler(indexer, worker, config, sync_config)

    assert sched.scheduler.get_jobs() == []
    assert sched.running is False


def test_job_errors_are_logged_not_raised(store, ledger, indexer, indexer_config, sync_config, lifecycle, caplog):
    worker = SyncWorker(store, ledger, sync_config, lifecycle=lifecycle)
    sched = _scheduler(indexer, worker, indexer_config, sync_config)

    def boom():
        raise RuntimeError("ledger exploded")

    indexer.scan = boom
    sched.scan_job()

    assert "ledger exploded" in caplog.text


def test_sync_job_runs_a_sweep(store, ledger, indexer, indexer_config, sync_config, lifecycle):
    calls = []

    class RecordingWorker(SyncWorker):
        def sweep(self):
            calls.append(1)
            return SyncSummary()

    worker = RecordingWorker(store, ledger, sync_config, lifecycle=lifecycle)
    sched = _scheduler(indexer, worker, indexer_config, sync_config)

    sched.sync_job()

    assert calls == [1]
