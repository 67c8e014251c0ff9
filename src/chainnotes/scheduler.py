"""Background scheduling for the indexer scan and the sync sweep.

Each job runs on a fixed interval, never overlaps itself, and collapses
missed runs into one.
"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import IndexerConfig, SyncConfig
from .indexer import Indexer
from .transactions import SyncWorker

logger = logging.getLogger(__name__)

SCAN_JOB_ID = "indexer_scan"
PENDING_JOB_ID = "indexer_pending_update"
SYNC_JOB_ID = "transaction_sync"


class ReconciliationScheduler:
    def __init__(
        self,
        indexer: Indexer,
        sync_worker: SyncWorker,
        indexer_config: IndexerConfig,
        sync_config: SyncConfig,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.indexer = indexer
        self.sync_worker = sync_worker
        self.indexer_config = indexer_config
        self.sync_config = sync_config
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self.setup_jobs()

    def setup_jobs(self) -> None:
        """Register the scan, pending-update and sync jobs."""
        if self.indexer_config.enabled:
            self.scheduler.add_job(
                self.scan_job,
                IntervalTrigger(seconds=self.indexer_config.poll_interval_seconds),
                id=SCAN_JOB_ID,
                name="Indexer Scan",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            self.scheduler.add_job(
                self.pending_update_job,
                IntervalTrigger(seconds=self.indexer_config.poll_interval_seconds),
                id=PENDING_JOB_ID,
                name="Indexed Pending Update",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

        if self.sync_config.enabled:
            self.scheduler.add_job(
                self.sync_job,
                IntervalTrigger(seconds=self.sync_config.interval_seconds),
                id=SYNC_JOB_ID,
                name="Transaction Sync",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

        logger.info(f"Scheduler jobs configured: {', '.join(job.id for job in self.scheduler.get_jobs()) or 'none'}")

    def scan_job(self) -> None:
        try:
            self.indexer.scan()
        except Exception as e:
            logger.error(f"Error in indexer scan job: {e}", exc_info=True)

    def pending_update_job(self) -> None:
        try:
            self.indexer.update_pending_transactions()
        except Exception as e:
            logger.error(f"Error in pending update job: {e}", exc_info=True)

    def sync_job(self) -> None:
        try:
            self.sync_worker.sweep()
        except Exception as e:
            logger.error(f"Error in transaction sync job: {e}", exc_info=True)

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Reconciliation scheduler started")

    def shutdown(self, wait: bool = True) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Reconciliation scheduler stopped")
