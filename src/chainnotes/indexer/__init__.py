"""Ledger indexing: metadata decoding, note mutation and the address scanner."""

from .applier import NoteMutationApplier
from .decoder import CreateNote, DeleteNote, NoteMutation, UpdateNote, decode, decode_payload
from .indexer import Indexer, IndexerState

__all__ = [
    "CreateNote",
    "DeleteNote",
    "Indexer",
    "IndexerState",
    "NoteMutation",
    "NoteMutationApplier",
    "UpdateNote",
    "decode",
    "decode_payload",
]
