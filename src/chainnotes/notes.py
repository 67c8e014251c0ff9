"""Local note CRUD used by the operator surface."""

import logging
from typing import Optional

import pydantic

from .errors import NoteNotFoundError, ValidationError
from .models.note import Note
from .models.transaction import TransactionStatus
from .store import RecordStore
from .validators import validate_wallet_address

logger = logging.getLogger(__name__)


def _first_error(e: pydantic.ValidationError) -> str:
    errors = e.errors()
    if not errors:
        return str(e)
    err = errors[0]
    field = ".".join(str(p) for p in err.get("loc", ()))
    return f"{field}: {err.get('msg')}" if field else str(err.get("msg"))


class NotesService:
    def __init__(self, store: RecordStore):
        self.store = store

    def create(
        self,
        title: str,
        content: str = "",
        category: Optional[str] = None,
        is_pinned: bool = False,
        wallet_address: Optional[str] = None,
    ) -> Note:
        """Create a local note. It is not on the ledger until a transaction confirms.

        Raises:
            ValidationError: If a field is blank or too long
        """
        if title is None or not title.strip():
            raise ValidationError("Title is required")
        if wallet_address is not None:
            wallet_address = validate_wallet_address(wallet_address)

        try:
            note = Note(
                title=title.strip(),
                content=content or "",
                category=category,
                is_pinned=is_pinned,
                created_by_wallet=wallet_address,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(_first_error(e)) from e

        saved = self.store.save_note(note)
        logger.info(f"Created note {saved.id}")
        return saved

    def get(self, note_id: int) -> Note:
        note = self.store.get_note(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        return note

    def list_notes(self, *, on_chain_only: bool = False) -> list[Note]:
        return self.store.list_notes(include_off_chain=not on_chain_only)

    def by_wallet(self, wallet_address: str) -> list[Note]:
        return self.store.list_notes_by_wallet(validate_wallet_address(wallet_address))

    def pending(self) -> list[Note]:
        return [n for n in self.store.list_notes() if n.status is not None and n.status.is_outstanding]

    def search(self, keyword: str) -> list[Note]:
        if keyword is None or not keyword.strip():
            return self.list_notes()
        return self.store.search_notes(keyword.strip())

    def update(
        self,
        note_id: int,
        *,
        title: Optional[str] = None,
        content: Optional[str] = None,
        category: Optional[str] = None,
        is_pinned: Optional[bool] = None,
    ) -> Note:
        note = self.get(note_id)
        try:
            if title is not None:
                if not title.strip():
                    raise ValidationError("Title is required")
                note.title = title.strip()
            if content is not None:
                note.content = content
            if category is not None:
                note.category = category
            if is_pinned is not None:
                note.is_pinned = is_pinned
        except pydantic.ValidationError as e:
            raise ValidationError(_first_error(e)) from e

        return self.store.save_note(note)

    def toggle_pin(self, note_id: int) -> Note:
        note = self.get(note_id)
        note.is_pinned = not note.is_pinned
        return self.store.save_note(note)

    def delete(self, note_id: int) -> None:
        """Remove a note and its tracked transactions from the local store.

        Indexed rows keep their hash and lose the note reference, so the
        ledger transaction is not applied again.
        """
        note = self.get(note_id)
        if note.status == TransactionStatus.MEMPOOL:
            logger.warning(f"Deleting note {note_id} while a transaction is in the mempool")
        self.store.delete_note(note_id)
        logger.info(f"Deleted note {note_id}")
