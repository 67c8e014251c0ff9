"""Client-originated transaction lifecycle: create, submit, fail, cancel, retry."""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from ..errors import (
    InvalidTransactionStatusError,
    NoteNotFoundError,
    TransactionNotFoundError,
    ValidationError,
)
from ..models.note import Note
from ..models.transaction import TrackedTransaction, TransactionStatus, TransactionType
from ..store import RecordStore
from ..validators import normalize_tx_hash, validate_metadata_size, validate_wallet_address

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "Marked as failed"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_type(tx_type: Union[TransactionType, str]) -> TransactionType:
    if isinstance(tx_type, TransactionType):
        return tx_type
    try:
        return TransactionType(str(tx_type).strip().upper())
    except ValueError as e:
        raise ValidationError(f"Invalid transaction type: {tx_type!r}. Must be CREATE, UPDATE or DELETE") from e


class PendingTransactionManager:
    """State machine for tracked transactions.

    PENDING -> MEMPOOL on submit, PENDING/MEMPOOL -> FAILED on fail,
    PENDING -> deleted on cancel, FAILED -> PENDING on retry. After every
    change the owning note's ``status`` mirrors its most recent tracked
    transaction, which is not always the one that changed.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def create(
        self,
        note_id: int,
        tx_type: Union[TransactionType, str],
        wallet_address: str,
        metadata: Optional[str] = None,
    ) -> TrackedTransaction:
        """Record an intent to mutate a note before anything is submitted.

        Raises:
            ValidationError: If any argument is malformed
            NoteNotFoundError: If the note does not exist
        """
        if isinstance(note_id, bool) or not isinstance(note_id, int) or note_id <= 0:
            raise ValidationError("Note ID must be a positive number")
        tx_type = _coerce_type(tx_type)
        wallet_address = validate_wallet_address(wallet_address)
        metadata = validate_metadata_size(metadata, allow_empty=tx_type == TransactionType.DELETE)

        note = self.store.get_note(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)

        with self.store.atomic():
            tx = self.store.save_tracked(
                TrackedTransaction(
                    note_id=note_id,
                    tx_type=tx_type,
                    wallet_address=wallet_address,
                    metadata_json=metadata,
                    status=TransactionStatus.PENDING,
                )
            )
            self._mirror_latest(note)
        logger.info(f"Created pending {tx_type.value} transaction {tx.id} for note {note_id}")
        return tx

    def submit(self, tx_id: int, tx_hash: str) -> TrackedTransaction:
        """Attach the ledger hash the client got back and move to MEMPOOL.

        Raises:
            ValidationError: If the hash is not 64 hex characters
            TransactionNotFoundError: If the transaction does not exist
            InvalidTransactionStatusError: If the transaction is not PENDING or the hash is taken
        """
        tx_hash = normalize_tx_hash(tx_hash)
        tx = self.get(tx_id)

        if tx.status != TransactionStatus.PENDING:
            raise InvalidTransactionStatusError(
                f"Transaction must be in PENDING status to submit. Current status: {tx.status.value}",
                current_status=tx.status.value,
            )

        other = self.store.get_tracked_by_hash(tx_hash)
        if other is not None and other.id != tx.id:
            raise InvalidTransactionStatusError(
                f"Transaction hash {tx_hash} is already used by transaction {other.id}",
                current_status=tx.status.value,
            )

        tx.tx_hash = tx_hash
        tx.status = TransactionStatus.MEMPOOL
        with self.store.atomic():
            tx = self.store.save_tracked(tx)
            note = self.store.get_note(tx.note_id)
            if note is not None:
                note.latest_tx_hash = tx_hash
                self._mirror_latest(note)

        logger.info(f"Transaction {tx.id} submitted with hash {tx_hash}")
        return tx

    def fail(self, tx_id: int, reason: Optional[str] = None) -> TrackedTransaction:
        tx = self.get(tx_id)
        if not tx.status.is_outstanding:
            raise InvalidTransactionStatusError(
                f"Only PENDING or MEMPOOL transactions can be failed. Current status: {tx.status.value}",
                current_status=tx.status.value,
            )
        tx = self.mark_failed(tx, reason or DEFAULT_FAILURE_REASON)
        logger.warning(f"Transaction {tx.id} marked as failed: {tx.error_message}")
        return tx

    def mark_failed(self, tx: TrackedTransaction, reason: str) -> TrackedTransaction:
        """Move ``tx`` to FAILED without checking its current status."""
        tx.status = TransactionStatus.FAILED
        tx.error_message = reason
        with self.store.atomic():
            tx = self.store.save_tracked(tx)
            self.refresh_note(tx.note_id)

        logger.debug(f"Transaction {tx.id} -> FAILED: {reason}")
        return tx

    def mark_confirmed(self, tx: TrackedTransaction) -> TrackedTransaction:
        """Move ``tx`` to CONFIRMED and put its note on the ledger."""
        tx.status = TransactionStatus.CONFIRMED
        with self.store.atomic():
            tx = self.store.save_tracked(tx)
            note = self.refresh_note(tx.note_id, on_chain=True)
        if note is None:
            logger.warning(f"Note {tx.note_id} not found for status update")
        return tx

    def cancel(self, tx_id: int) -> None:
        """Delete a transaction that was never submitted."""
        tx = self.get(tx_id)
        if tx.status != TransactionStatus.PENDING:
            raise InvalidTransactionStatusError(
                f"Only PENDING transactions can be cancelled. Current status: {tx.status.value}",
                current_status=tx.status.value,
            )

        with self.store.atomic():
            self.store.delete_tracked(tx.id)
            self.refresh_note(tx.note_id)

        logger.info(f"Transaction {tx.id} cancelled")

    def retry(self, tx_id: int) -> TrackedTransaction:
        """Return a FAILED transaction to PENDING with a fresh retry budget.

        The expiry clock restarts at the retry time.
        """
        tx = self.get(tx_id)
        if tx.status != TransactionStatus.FAILED:
            raise InvalidTransactionStatusError(
                f"Can only retry failed transactions. Current status: {tx.status.value}",
                current_status=tx.status.value,
            )

        tx.status = TransactionStatus.PENDING
        tx.retry_count = 0
        tx.error_message = None
        tx.retried_at = _utc_now()
        with self.store.atomic():
            tx = self.store.save_tracked(tx)
            self.refresh_note(tx.note_id)

        logger.info(f"Transaction {tx.id} queued for retry")
        return tx

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, tx_id: int) -> TrackedTransaction:
        tx = self.store.get_tracked(tx_id)
        if tx is None:
            raise TransactionNotFoundError(tx_id)
        return tx

    def get_by_hash(self, tx_hash: str) -> TrackedTransaction:
        tx_hash = normalize_tx_hash(tx_hash)
        tx = self.store.get_tracked_by_hash(tx_hash)
        if tx is None:
            raise TransactionNotFoundError(tx_hash)
        return tx

    def for_note(self, note_id: int) -> list[TrackedTransaction]:
        return self.store.list_tracked_for_note(note_id)

    def by_wallet(self, wallet_address: str) -> list[TrackedTransaction]:
        return self.store.list_tracked_by_wallet(validate_wallet_address(wallet_address))

    def by_status(self, *statuses: TransactionStatus) -> list[TrackedTransaction]:
        return self.store.list_tracked_by_status(*statuses)

    def outstanding(self) -> list[TrackedTransaction]:
        return self.store.list_tracked_by_status(TransactionStatus.PENDING, TransactionStatus.MEMPOOL)

    def counts(self) -> dict[str, int]:
        return self.store.count_tracked_by_status()

    def refresh_note(self, note_id: int, *, on_chain: Optional[bool] = None) -> Optional[Note]:
        """Set the note's status from its most recent tracked transaction.

        Returns None when the note no longer exists.
        """
        note = self.store.get_note(note_id)
        if note is None:
            return None
        if on_chain is not None:
            note.on_chain = on_chain
        return self._mirror_latest(note)

    def _mirror_latest(self, note: Note) -> Note:
        latest = self.store.list_tracked_for_note(note.id)
        note.status = latest[0].status if latest else None
        return self.store.save_note(note)
