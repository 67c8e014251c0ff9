"""Pydantic model for the indexer status report."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

UP_TO_DATE_BLOCKS = 5


class IndexerStatus(BaseModel):
    """Snapshot of the indexer and tracked-transaction counters.

    ``current_block_height`` is None when the ledger could not be reached;
    ``ledger_status`` then carries the reason.
    """

    enabled: bool
    running: bool
    network: str | None = None
    current_block_height: int | None = None
    latest_indexed_block: int | None = None
    last_indexed_at: datetime | None = None
    total_transactions_indexed: int = 0
    total_transactions_skipped: int = 0
    indexed_by_status: dict[str, int] = Field(default_factory=dict)
    tracked_by_status: dict[str, int] = Field(default_factory=dict)
    monitored_addresses_count: int = 0
    ledger_status: str = "UNAVAILABLE"
    started_at: datetime | None = None
    last_error: str | None = None

    @property
    def is_operational(self) -> bool:
        return self.enabled and self.running and self.last_error is None

    @property
    def has_errors(self) -> bool:
        return bool(self.last_error and self.last_error.strip())

    @property
    def blocks_behind(self) -> int:
        if self.current_block_height is None or self.latest_indexed_block is None:
            return 0
        return max(0, self.current_block_height - self.latest_indexed_block)

    @property
    def is_up_to_date(self) -> bool:
        if self.current_block_height is None or self.latest_indexed_block is None:
            return False
        return self.blocks_behind <= UP_TO_DATE_BLOCKS

    @property
    def is_ledger_available(self) -> bool:
        return self.ledger_status.upper() == "AVAILABLE"

    @property
    def uptime_seconds(self) -> int:
        if self.started_at is None:
            return 0
        return int((datetime.now(timezone.utc) - self.started_at).total_seconds())
