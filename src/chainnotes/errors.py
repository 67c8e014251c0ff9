"""Caller-facing exceptions for chainnotes operations.

Ledger failures (``LedgerApiError``) are not part of this hierarchy. The
indexer and sync worker absorb them and report them through status fields
and logs.
"""


class ChainNotesError(Exception):
    """Base class for errors surfaced to the operator or HTTP layer."""
    pass


class ValidationError(ChainNotesError, ValueError):
    """Input rejected before any state change (bad hash, address, payload)."""
    pass


class NotFoundError(ChainNotesError, LookupError):
    """Referenced entity does not exist."""
    pass


class NoteNotFoundError(NotFoundError):
    def __init__(self, note_id: int):
        super().__init__(f"Note not found with id: {note_id}")
        self.note_id = note_id


class TransactionNotFoundError(NotFoundError):
    def __init__(self, ref: int | str):
        if isinstance(ref, str):
            message = f"Transaction not found with hash: {ref}"
        else:
            message = f"Transaction not found with id: {ref}"
        super().__init__(message)
        self.ref = ref


class InvalidTransactionStatusError(ChainNotesError):
    """Operation is not legal from the transaction's current status."""

    def __init__(self, message: str, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status
