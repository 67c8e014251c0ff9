"""Tracked transaction lifecycle and the background sync worker."""

from .lifecycle import PendingTransactionManager
from .sync_worker import SyncSummary, SyncWorker

__all__ = ["PendingTransactionManager", "SyncSummary", "SyncWorker"]
