"""Pydantic models for tracked and indexed ledger transactions."""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class TransactionStatus(str, Enum):
    """Lifecycle status shared by tracked transactions, indexed rows and notes."""

    PENDING = "PENDING"
    MEMPOOL = "MEMPOOL"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"

    @property
    def is_outstanding(self) -> bool:
        return self in (TransactionStatus.PENDING, TransactionStatus.MEMPOOL)


class TransactionType(str, Enum):
    """Note mutation carried by a transaction."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class TrackedTransaction(BaseModel):
    """A locally originated intent to mutate one note.

    Created before the client submits anything to the ledger; followed
    through PENDING -> MEMPOOL -> CONFIRMED/FAILED by the lifecycle manager
    and the sync worker.
    """

    id: int | None = Field(default=None, description="Store-assigned identifier")
    note_id: int = Field(description="Note this transaction mutates")
    tx_type: TransactionType = Field(description="Mutation type")
    tx_hash: str | None = Field(default=None, description="Ledger hash, set on submit")
    status: TransactionStatus = Field(default=TransactionStatus.PENDING)
    wallet_address: str = Field(description="Submitting wallet")
    metadata_json: str | None = Field(default=None, description="Serialized metadata payload")
    block_height: int | None = None
    block_time: datetime | None = None
    retry_count: int = Field(default=0, ge=0)
    error_message: str | None = None
    created_at: datetime | None = None
    confirmed_at: datetime | None = None
    last_checked_at: datetime | None = None
    retried_at: datetime | None = Field(
        default=None,
        description="Set when an operator retries a FAILED transaction; restarts the expiry clock",
    )

    model_config = {"frozen": False}


class IndexedTransaction(BaseModel):
    """A ledger transaction discovered by the indexer, keyed by hash.

    ``action_type`` is None when the transaction carried our metadata label
    but could not be decoded or applied; the row still exists so the hash is
    never reprocessed.
    """

    id: int | None = None
    tx_hash: str
    block_height: int | None = None
    block_time: datetime | None = None
    action_type: TransactionType | None = None
    status: TransactionStatus = TransactionStatus.CONFIRMED
    metadata_json: str | None = None
    wallet_address: str | None = None
    note_id: int | None = None
    note_title: str | None = None
    indexed_at: datetime | None = None
    confirmations: int | None = None

    model_config = {"frozen": False}

    def metadata(self) -> Any:
        if not self.metadata_json:
            return None
        try:
            return json.loads(self.metadata_json)
        except json.JSONDecodeError:
            return None
