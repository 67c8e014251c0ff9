"""Pydantic model for a user note."""

from datetime import datetime

from pydantic import BaseModel, Field

from .transaction import TransactionStatus

MAX_TITLE_LENGTH = 255
MAX_CONTENT_LENGTH = 10000
MAX_CATEGORY_LENGTH = 100


class Note(BaseModel):
    """A user document, optionally anchored on the ledger.

    ``status`` mirrors the note's most recent tracked transaction. A ledger
    DELETE only clears ``on_chain``; the row is never removed by the
    reconciliation engine.
    """

    id: int | None = Field(default=None, description="Store-assigned identifier")
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    content: str = Field(default="", max_length=MAX_CONTENT_LENGTH)
    category: str | None = Field(default=None, max_length=MAX_CATEGORY_LENGTH)
    is_pinned: bool = False
    created_by_wallet: str | None = Field(default=None, max_length=150)
    on_chain: bool = False
    latest_tx_hash: str | None = None
    status: TransactionStatus | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"frozen": False, "validate_assignment": True}
