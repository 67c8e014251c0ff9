"""Pydantic models for chainnotes."""

from .indexer import IndexerStatus
from .ledger import AddressTransaction, LatestBlock, MetadataEntry, TransactionDetail
from .note import Note
from .transaction import IndexedTransaction, TrackedTransaction, TransactionStatus, TransactionType

__all__ = [
    "Note",
    # Transactions
    "TransactionStatus",
    "TransactionType",
    "TrackedTransaction",
    "IndexedTransaction",
    # Ledger records
    "LatestBlock",
    "AddressTransaction",
    "MetadataEntry",
    "TransactionDetail",
    # Indexer
    "IndexerStatus",
]
