"""Wiring of every chainnotes component from one configuration."""

import logging
from typing import Optional

from .config import ChainNotesConfig
from .indexer import Indexer, NoteMutationApplier
from .ledger import BlockfrostClient, LedgerClient
from .models.indexer import IndexerStatus
from .models.note import Note
from .models.transaction import IndexedTransaction, TrackedTransaction, TransactionType
from .notes import NotesService
from .scheduler import ReconciliationScheduler
from .store import RecordStore
from .transactions import PendingTransactionManager, SyncSummary, SyncWorker

logger = logging.getLogger(__name__)


class Runtime:
    """Operator surface over the reconciliation engine.

    Holds one store, one ledger client and one instance of each component.
    The scheduler is created lazily by ``start_background``.
    """

    def __init__(self, config: ChainNotesConfig, ledger: Optional[LedgerClient] = None):
        self.config = config
        self.store = RecordStore(config.db_path)
        self.ledger = ledger or BlockfrostClient(config.blockfrost)
        self.notes = NotesService(self.store)
        self.applier = NoteMutationApplier(self.store)
        self.indexer = Indexer(self.store, self.ledger, config.indexer, applier=self.applier)
        self.transactions = PendingTransactionManager(self.store)
        self.sync_worker = SyncWorker(self.store, self.ledger, config.sync, lifecycle=self.transactions)
        self._scheduler: Optional[ReconciliationScheduler] = None

    @classmethod
    def from_env(cls, cli_db_path: Optional[str] = None) -> "Runtime":
        return cls(ChainNotesConfig.from_env(cli_db_path=cli_db_path))

    # Indexer
    def start_indexer(self) -> bool:
        return self.indexer.start()

    def stop_indexer(self) -> bool:
        return self.indexer.stop()

    def status(self) -> IndexerStatus:
        return self.indexer.status()

    def scan(self) -> int:
        return self.indexer.scan()

    def reindex(self, block_height: int) -> int:
        return self.indexer.reindex_from_block(block_height)

    def process_transaction(self, tx_hash: str) -> Optional[IndexedTransaction]:
        return self.indexer.process_transaction(tx_hash)

    def update_pending(self) -> int:
        return self.indexer.update_pending_transactions()

    # Tracked transactions
    def create_transaction(
        self, note_id: int, tx_type: TransactionType | str, wallet_address: str, metadata: Optional[str] = None
    ) -> TrackedTransaction:
        return self.transactions.create(note_id, tx_type, wallet_address, metadata)

    def submit_transaction(self, tx_id: int, tx_hash: str) -> TrackedTransaction:
        return self.transactions.submit(tx_id, tx_hash)

    def fail_transaction(self, tx_id: int, reason: Optional[str] = None) -> TrackedTransaction:
        return self.transactions.fail(tx_id, reason)

    def cancel_transaction(self, tx_id: int) -> None:
        self.transactions.cancel(tx_id)

    def retry_transaction(self, tx_id: int) -> TrackedTransaction:
        return self.transactions.retry(tx_id)

    def sync(self) -> SyncSummary:
        return self.sync_worker.sweep()

    def note_with_history(self, note_id: int) -> tuple[Note, list[TrackedTransaction], list[IndexedTransaction]]:
        note = self.notes.get(note_id)
        return note, self.transactions.for_note(note_id), self.indexer.note_history(note_id)

    # Background
    def start_background(self) -> ReconciliationScheduler:
        """Start the indexer and the interval jobs."""
        if self.config.indexer.enabled and not self.indexer.running:
            self.indexer.start()
        if self._scheduler is None:
            self._scheduler = ReconciliationScheduler(
                self.indexer, self.sync_worker, self.config.indexer, self.config.sync
            )
        self._scheduler.start()
        return self._scheduler

    def shutdown(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown()
        if self.indexer.running:
            self.stop_indexer()
