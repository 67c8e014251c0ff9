"""Ledger indexer: discovers note transactions for monitored addresses."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..config import IndexerConfig
from ..errors import ValidationError
from ..ledger.client import LedgerApiError, LedgerClient
from ..models.indexer import IndexerStatus
from ..models.transaction import IndexedTransaction, TransactionStatus
from ..store import RecordStore
from ..validators import normalize_tx_hash
from .applier import NoteMutationApplier
from .decoder import decode_payload, parse_action, select_entry

logger = logging.getLogger(__name__)

UNCONFIRMED_STATUSES = (TransactionStatus.PENDING, TransactionStatus.MEMPOOL, TransactionStatus.FAILED)


@dataclass
class IndexerState:
    """Mutable state carried across scans for one indexer instance."""

    running: bool = False
    latest_indexed_block_height: int = 0
    total_transactions_indexed: int = 0
    total_transactions_skipped: int = 0
    started_at: Optional[datetime] = None
    last_indexed_at: Optional[datetime] = None
    last_error: Optional[str] = None


@dataclass(frozen=True)
class IndexOutcome:
    record: Optional[IndexedTransaction]
    processed: bool


class Indexer:
    """Scans monitored addresses and applies labelled metadata to notes.

    A transaction hash is applied at most once: the indexed-row existence
    check runs before any ledger lookup, and the row is written in the same
    pass that applies the mutation. Scans never overlap; a scan that finds
    another one in progress returns 0 immediately.
    """

    def __init__(
        self,
        store: RecordStore,
        ledger: LedgerClient,
        config: IndexerConfig,
        applier: Optional[NoteMutationApplier] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.config = config
        self.applier = applier or NoteMutationApplier(store)
        self.state = IndexerState(latest_indexed_block_height=config.start_height)
        self._scan_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self.state.running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        if self.state.running:
            logger.warning("Indexer is already running")
            return False

        if not self.config.enabled:
            logger.error("Cannot start indexer: indexer is disabled in configuration")
            self.state.last_error = "Indexer disabled in configuration"
            return False

        if not self.ledger.is_configured():
            logger.error("Cannot start indexer: ledger client is not configured")
            self.state.last_error = "Ledger client not configured"
            return False

        self.state.running = True
        self.state.started_at = datetime.now(timezone.utc)
        self.state.last_error = None
        logger.info(f"Indexer started at block {self.state.latest_indexed_block_height}")
        return True

    def stop(self) -> bool:
        """Prevent new scans; a scan already in flight runs to completion."""
        if not self.state.running:
            logger.warning("Indexer is not running")
            return False

        self.state.running = False
        logger.info(f"Indexer stopped. Total transactions indexed: {self.state.total_transactions_indexed}")
        return True

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan(self) -> int:
        """Run one sweep over every monitored address.

        Returns:
            Number of transactions indexed and applied; 0 on any scan-level error
        """
        if not self.state.running:
            return 0

        if not self._scan_lock.acquire(blocking=False):
            logger.debug("Scan already in progress, skipping")
            return 0
        try:
            return self._scan()
        finally:
            self._scan_lock.release()

    def _scan(self) -> int:
        try:
            current_height = self.ledger.latest_block().height

            if current_height <= self.state.latest_indexed_block_height:
                logger.debug("No new blocks to process")
                return 0

            addresses = self.config.monitor_addresses
            if not addresses:
                logger.warning("No wallet addresses configured for monitoring")
                return 0

            processed = 0
            for address in addresses:
                try:
                    processed += self._scan_address(address, current_height)
                except Exception as e:
                    logger.error(f"Error processing transactions for address {address}: {e}")

            self.state.latest_indexed_block_height = current_height
            self.state.last_indexed_at = datetime.now(timezone.utc)
            self.state.total_transactions_indexed += processed
            self.state.last_error = None

            if processed > 0:
                logger.info(f"Scan completed. Processed {processed} transactions. Latest block: {current_height}")
            return processed

        except Exception as e:
            logger.error(f"Error during ledger scan: {e}", exc_info=True)
            self.state.last_error = f"Scan error: {e}"
            return 0

    def _scan_address(self, address: str, current_height: int) -> int:
        processed = 0
        for row in self.ledger.address_transactions(address, page=1):
            if self.store.indexed_exists(row.tx_hash):
                continue
            # Only the start height bounds a scan; hashes that failed earlier sit below the cursor
            if row.block_height is not None and row.block_height < self.config.start_height:
                continue

            try:
                outcome = self._index(row.tx_hash, current_height, fallback_wallet=address)
            except Exception as e:
                logger.error(f"Error processing transaction {row.tx_hash}: {e}")
                continue
            if outcome.processed:
                processed += 1
        return processed

    def _index(self, tx_hash: str, current_height: Optional[int], fallback_wallet: Optional[str]) -> IndexOutcome:
        """Look up one hash, decode its metadata, apply it and record the row.

        Untagged transactions and hashes the ledger does not know are not
        recorded. Labelled metadata that cannot be used is recorded without
        a note so the hash is never looked at again.
        """
        detail = self.ledger.transaction_detail(tx_hash)
        if detail is None:
            logger.warning(f"Transaction {tx_hash} not found on ledger")
            return IndexOutcome(None, False)

        entry = select_entry(detail.metadata, self.config.metadata_label)
        if entry is None:
            logger.debug(f"Transaction {tx_hash} has no metadata with label {self.config.metadata_label}")
            return IndexOutcome(None, False)

        payload = entry.json_metadata
        mutation = decode_payload(payload)
        wallet = _payload_wallet(payload) or fallback_wallet

        record = IndexedTransaction(
            tx_hash=tx_hash,
            block_height=detail.block_height,
            block_time=detail.block_datetime,
            action_type=parse_action(payload),
            status=TransactionStatus.CONFIRMED if detail.is_confirmed else TransactionStatus.PENDING,
            metadata_json=entry.to_json(),
            wallet_address=wallet,
            confirmations=_confirmations(current_height, detail.block_height),
        )

        processed = False
        # Note mutation and indexed row commit together or not at all
        with self.store.atomic():
            if mutation is None or not wallet:
                logger.warning(f"Transaction {tx_hash} carries unusable note metadata, recording as skipped")
            elif not detail.is_confirmed:
                logger.debug(f"Transaction {tx_hash} has no block yet, recording as pending")
                processed = True
            else:
                note = self.applier.apply(mutation, wallet, tx_hash)
                if note is not None:
                    record.note_id = note.id
                    record.note_title = note.title
                    processed = True

            saved = self.store.save_indexed(record)

        if not processed:
            self.state.total_transactions_skipped += 1
        logger.info(f"Indexed transaction {tx_hash} of type {_type_name(record)} for wallet {wallet}")
        return IndexOutcome(saved, processed)

    def reindex_from_block(self, block_height: int) -> int:
        """Rewind the cursor to ``block_height`` and scan once.

        Already indexed hashes are still skipped, so nothing is applied twice.
        """
        if not self.state.running:
            logger.warning("Cannot reindex: indexer is not running")
            return 0
        if block_height < 0:
            raise ValidationError("Block height must not be negative")

        logger.info(f"Starting reindex from block {block_height}")
        self.state.latest_indexed_block_height = block_height
        return self.scan()

    def process_transaction(self, tx_hash: str) -> Optional[IndexedTransaction]:
        """Index a single hash on demand.

        Returns:
            The indexed row (existing or new), or None if nothing was recorded

        Raises:
            ValidationError: If the hash is malformed
        """
        tx_hash = normalize_tx_hash(tx_hash)

        with self._scan_lock:
            existing = self.store.get_indexed_by_hash(tx_hash)
            if existing is not None:
                logger.debug(f"Transaction {tx_hash} already indexed")
                return existing

            try:
                outcome = self._index(tx_hash, self._current_height(), fallback_wallet=None)
            except LedgerApiError as e:
                logger.error(f"Error processing transaction {tx_hash}: {e}")
                return None

        if outcome.processed:
            self.state.total_transactions_indexed += 1
        return outcome.record

    def update_pending_transactions(self) -> int:
        """Promote indexed rows that were seen before they had a block.

        Metadata stored on the row is applied at promotion time.
        """
        if not self._scan_lock.acquire(blocking=False):
            logger.debug("Scan in progress, skipping pending update")
            return 0
        try:
            pending = self.store.list_indexed_by_status(*UNCONFIRMED_STATUSES)
            if not pending:
                return 0

            current_height = self._current_height()
            updated = 0
            for record in pending:
                try:
                    if self._promote(record, current_height):
                        updated += 1
                except Exception as e:
                    logger.error(f"Failed to update transaction {record.tx_hash}: {e}")

            logger.info(f"Updated {updated} pending transactions")
            return updated
        finally:
            self._scan_lock.release()

    def _promote(self, record: IndexedTransaction, current_height: Optional[int]) -> bool:
        detail = self.ledger.transaction_detail(record.tx_hash)
        if detail is None or not detail.is_confirmed:
            return False

        with self.store.atomic():
            if record.note_id is None and record.wallet_address:
                mutation = decode_payload(record.metadata())
                if mutation is not None:
                    note = self.applier.apply(mutation, record.wallet_address, record.tx_hash)
                    if note is not None:
                        record.note_id = note.id
                        record.note_title = note.title

            record.status = TransactionStatus.CONFIRMED
            record.block_height = detail.block_height
            record.block_time = detail.block_datetime
            record.confirmations = _confirmations(current_height, detail.block_height)
            self.store.save_indexed(record)
        return True

    def _current_height(self) -> Optional[int]:
        try:
            return self.ledger.latest_block().height
        except LedgerApiError as e:
            logger.warning(f"Failed to fetch latest block: {e}")
            return None

    # ------------------------------------------------------------------
    # Status and queries
    # ------------------------------------------------------------------

    def status(self) -> IndexerStatus:
        current_height = None
        ledger_status = "UNAVAILABLE"
        if self.ledger.is_configured():
            try:
                current_height = self.ledger.latest_block().height
                ledger_status = "AVAILABLE"
            except Exception as e:
                logger.error(f"Failed to get latest block: {e}")
                ledger_status = f"ERROR: {e}"

        return IndexerStatus(
            enabled=self.config.enabled,
            running=self.state.running,
            network=getattr(self.ledger, "network", None),
            current_block_height=current_height,
            latest_indexed_block=self.state.latest_indexed_block_height,
            last_indexed_at=self.state.last_indexed_at,
            total_transactions_indexed=self.state.total_transactions_indexed,
            total_transactions_skipped=self.state.total_transactions_skipped,
            indexed_by_status=self.store.count_indexed_by_status(),
            tracked_by_status=self.store.count_tracked_by_status(),
            monitored_addresses_count=len(self.config.monitor_addresses),
            ledger_status=ledger_status,
            started_at=self.state.started_at,
            last_error=self.state.last_error,
        )

    def transactions_by_wallet(self, wallet_address: str) -> list[IndexedTransaction]:
        return self.store.list_indexed_by_wallet(wallet_address)

    def note_history(self, note_id: int) -> list[IndexedTransaction]:
        return self.store.list_indexed_for_note(note_id)

    def pending_transactions(self) -> list[IndexedTransaction]:
        return self.store.list_indexed_by_status(*UNCONFIRMED_STATUSES)


def _confirmations(current_height: Optional[int], block_height: Optional[int]) -> Optional[int]:
    if current_height is None or block_height is None:
        return None
    return current_height - block_height + 1


def _payload_wallet(payload) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    wallet = payload.get("walletAddress")
    if isinstance(wallet, str) and wallet.strip():
        return wallet.strip()
    return None


def _type_name(record: IndexedTransaction) -> str:
    return record.action_type.value if record.action_type else "UNKNOWN"
