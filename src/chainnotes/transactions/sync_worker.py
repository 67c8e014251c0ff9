"""Periodic sweep that confirms or expires outstanding tracked transactions."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..config import SyncConfig
from ..ledger.client import LedgerApiError, LedgerClient
from ..models.transaction import TrackedTransaction
from ..store import RecordStore
from .lifecycle import PendingTransactionManager

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Transaction expired - timeout exceeded"
RETRIES_EXHAUSTED_REASON = "Max retry count exceeded"

CONFIRMED = "confirmed"
FAILED = "failed"
EXPIRED = "expired"
WAITING = "waiting"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SyncSummary:
    """Aggregate result of one sweep."""

    checked: int = 0
    confirmed: int = 0
    failed: int = 0
    expired: int = 0
    waiting: int = 0
    errors: int = 0


class SyncWorker:
    """Advances PENDING/MEMPOOL tracked transactions against the ledger.

    For each outstanding transaction, in order: the timeout is checked first
    and wins over everything else, then the retry budget, then the ledger is
    asked whether the hash has a block. A lookup failure spends one retry.
    """

    def __init__(
        self,
        store: RecordStore,
        ledger: LedgerClient,
        config: SyncConfig,
        lifecycle: Optional[PendingTransactionManager] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.ledger = ledger
        self.config = config
        self.lifecycle = lifecycle or PendingTransactionManager(store)
        self.enabled = config.enabled
        self._clock = clock
        self._sweep_lock = threading.Lock()

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        logger.info(f"Transaction sync {'enabled' if enabled else 'disabled'}")

    def sweep(self) -> SyncSummary:
        if not self.enabled:
            logger.debug("Transaction sync is disabled")
            return SyncSummary()

        if not self._sweep_lock.acquire(blocking=False):
            logger.debug("Sync sweep already in progress, skipping")
            return SyncSummary()
        try:
            return self._sweep()
        finally:
            self._sweep_lock.release()

    def _sweep(self) -> SyncSummary:
        outstanding = self.lifecycle.outstanding()
        logger.debug(f"Found {len(outstanding)} outstanding transactions to check")

        counts = {CONFIRMED: 0, FAILED: 0, EXPIRED: 0, WAITING: 0}
        errors = 0
        for tx in outstanding:
            try:
                counts[self._sync_one(tx)] += 1
            except Exception as e:
                errors += 1
                logger.error(f"Error syncing transaction {tx.id}: {e}", exc_info=True)

        summary = SyncSummary(
            checked=len(outstanding),
            confirmed=counts[CONFIRMED],
            failed=counts[FAILED],
            expired=counts[EXPIRED],
            waiting=counts[WAITING],
            errors=errors,
        )
        logger.info(
            f"Transaction sync completed. Confirmed: {summary.confirmed}, Failed: {summary.failed}, "
            f"Expired: {summary.expired}, Waiting: {summary.waiting}"
        )
        return summary

    def _sync_one(self, tx: TrackedTransaction) -> str:
        now = self._clock()

        if self._is_expired(tx, now):
            logger.debug(f"Transaction {tx.id} has expired")
            self.lifecycle.mark_failed(tx, EXPIRED_REASON)
            return EXPIRED

        if tx.retry_count >= self.config.max_retry_count:
            logger.debug(f"Transaction {tx.id} exceeded max retry count")
            self.lifecycle.mark_failed(tx, RETRIES_EXHAUSTED_REASON)
            return FAILED

        if not tx.tx_hash:
            # Not submitted yet; only the timeout applies
            return WAITING

        try:
            detail = self.ledger.transaction_detail(tx.tx_hash)
        except LedgerApiError as e:
            logger.debug(f"Lookup of transaction {tx.tx_hash} failed: {e}")
            tx.retry_count += 1
            tx.last_checked_at = now
            if tx.retry_count >= self.config.max_retry_count:
                self.lifecycle.mark_failed(tx, f"Transaction not found: {e}")
                return FAILED
            self.store.save_tracked(tx)
            return WAITING

        if detail is None or not detail.is_confirmed:
            tx.retry_count += 1
            tx.last_checked_at = now
            self.store.save_tracked(tx)
            logger.debug(f"Transaction {tx.tx_hash} not yet confirmed. Retry count: {tx.retry_count}")
            return WAITING

        tx.block_height = detail.block_height
        tx.block_time = detail.block_datetime
        tx.confirmed_at = now
        tx.last_checked_at = now
        tx = self.lifecycle.mark_confirmed(tx)
        logger.debug(f"Transaction {tx.tx_hash} confirmed at block height {tx.block_height}")
        return CONFIRMED

    def _is_expired(self, tx: TrackedTransaction, now: datetime) -> bool:
        started = tx.retried_at or tx.created_at
        if started is None:
            return False
        return now - started > timedelta(minutes=self.config.timeout_minutes)
