"""Pydantic models for records returned by the ledger API (Blockfrost)."""

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def epoch_to_datetime(seconds: int | None) -> datetime | None:
    if seconds is None:
        return None
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)


class LatestBlock(BaseModel):
    """Chain tip as reported by ``/blocks/latest``."""

    height: int
    hash: str
    time: int | None = Field(default=None, description="Block time (unix seconds)")
    slot: int | None = None


class AddressTransaction(BaseModel):
    """One row of ``/addresses/{address}/transactions``."""

    tx_hash: str = Field(min_length=1)
    tx_index: int | None = None
    block_height: int | None = None
    block_time: int | None = None


class MetadataEntry(BaseModel):
    """One labelled metadata entry attached to a transaction."""

    label: str
    json_metadata: Any = None

    def has_label(self, expected: int | None) -> bool:
        if expected is None:
            return False
        try:
            return int(self.label) == int(expected)
        except (TypeError, ValueError):
            return False

    def to_json(self) -> str | None:
        if self.json_metadata is None:
            return None
        return json.dumps(self.json_metadata, ensure_ascii=False, sort_keys=True)


class TransactionDetail(BaseModel):
    """Transaction detail merged with its metadata entries."""

    hash: str
    block: str | None = None
    block_height: int | None = None
    block_time: int | None = None
    slot: int | None = None
    fees: str | None = None
    metadata: list[MetadataEntry] = Field(default_factory=list)

    @property
    def is_confirmed(self) -> bool:
        return self.block_height is not None and self.block_height > 0

    @property
    def block_datetime(self) -> datetime | None:
        return epoch_to_datetime(self.block_time)
