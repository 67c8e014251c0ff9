"""Apply decoded ledger mutations to local notes."""

import logging
from typing import Optional

from ..models.note import Note
from ..store import RecordStore
from .decoder import CreateNote, DeleteNote, NoteMutation, UpdateNote

logger = logging.getLogger(__name__)


class NoteMutationApplier:
    """Turns a decoded mutation into a saved note.

    Every rejection (blank title, unknown note, foreign wallet, a value the
    note model refuses) returns None and logs; nothing here raises on bad
    ledger data. Re-applying the same transaction is prevented by the
    indexer's hash check, not here.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def apply(self, mutation: NoteMutation, wallet_address: str, tx_hash: str) -> Optional[Note]:
        try:
            if isinstance(mutation, CreateNote):
                return self._create(mutation, wallet_address, tx_hash)
            if isinstance(mutation, UpdateNote):
                return self._update(mutation, wallet_address, tx_hash)
            if isinstance(mutation, DeleteNote):
                return self._delete(mutation, wallet_address)
        except ValueError as e:
            logger.warning(f"Rejected {mutation.kind} from transaction {tx_hash}: {e}")
            return None

        logger.warning(f"Unsupported mutation type: {type(mutation).__name__}")
        return None

    def _create(self, mutation: CreateNote, wallet_address: str, tx_hash: str) -> Optional[Note]:
        if not mutation.title or not mutation.title.strip():
            logger.warning(f"Cannot create note from {tx_hash}: title is missing")
            return None

        note = Note(
            title=mutation.title,
            content=mutation.content or "",
            category=mutation.category,
            is_pinned=bool(mutation.is_pinned),
            created_by_wallet=wallet_address,
            on_chain=True,
            latest_tx_hash=tx_hash,
        )
        saved = self.store.save_note(note)
        logger.info(f"Created note {saved.id} from ledger transaction {tx_hash}")
        return saved

    def _owned_note(self, note_id: int, wallet_address: str, action: str) -> Optional[Note]:
        note = self.store.get_note(note_id)
        if note is None:
            logger.warning(f"Note {note_id} not found for {action}")
            return None
        if wallet_address != note.created_by_wallet:
            logger.warning(f"Wallet {wallet_address} does not own note {note_id}")
            return None
        return note

    def _update(self, mutation: UpdateNote, wallet_address: str, tx_hash: str) -> Optional[Note]:
        note = self._owned_note(mutation.note_id, wallet_address, "update")
        if note is None:
            return None

        if mutation.title is not None:
            note.title = mutation.title
        if mutation.content is not None:
            note.content = mutation.content
        if mutation.category is not None:
            note.category = mutation.category
        if mutation.is_pinned is not None:
            note.is_pinned = mutation.is_pinned
        note.latest_tx_hash = tx_hash

        saved = self.store.save_note(note)
        logger.info(f"Updated note {saved.id} from ledger transaction {tx_hash}")
        return saved

    def _delete(self, mutation: DeleteNote, wallet_address: str) -> Optional[Note]:
        note = self._owned_note(mutation.note_id, wallet_address, "deletion")
        if note is None:
            return None

        note.on_chain = False
        saved = self.store.save_note(note)
        logger.info(f"Marked note {saved.id} as deleted on the ledger")
        return saved
