"""Pytest fixtures for chainnotes tests."""

from typing import Any, Optional

import pytest

from chainnotes.config import IndexerConfig, SyncConfig
from chainnotes.indexer import Indexer
from chainnotes.ledger import LedgerApiError
from chainnotes.models.ledger import AddressTransaction, LatestBlock, MetadataEntry, TransactionDetail
from chainnotes.models.note import Note
from chainnotes.store import RecordStore
from chainnotes.transactions import PendingTransactionManager

LABEL = 42819

# Shape-valid testnet addresses (bech32 alphabet, >= 58 chars)
OWNER = "addr_test1" + "qp" * 25
OTHER = "addr_test1" + "zr" * 25


def tx_hash(n: int) -> str:
    return f"{n:064x}"


class FakeLedger:
    """In-memory ledger with the same surface as BlockfrostClient."""

    def __init__(self, height: int = 1000, network: str = "preview"):
        self.network = network
        self.height = height
        self.configured = True
        self.address_txs: dict[str, list[AddressTransaction]] = {}
        self.details: dict[str, TransactionDetail] = {}
        self.detail_errors: dict[str, Exception] = {}
        self.address_errors: dict[str, Exception] = {}
        self.latest_error: Optional[Exception] = None
        self.detail_calls: list[str] = []

    def is_configured(self) -> bool:
        return self.configured

    def latest_block(self) -> LatestBlock:
        if self.latest_error is not None:
            raise self.latest_error
        return LatestBlock(height=self.height, hash="tip", time=1_700_000_000)

    def address_transactions(self, address: str, page: int = 1) -> list[AddressTransaction]:
        if address in self.address_errors:
            raise self.address_errors[address]
        return list(self.address_txs.get(address, []))

    def transaction_detail(self, tx_hash: str) -> Optional[TransactionDetail]:
        self.detail_calls.append(tx_hash)
        if tx_hash in self.detail_errors:
            raise self.detail_errors[tx_hash]
        return self.details.get(tx_hash)

    def add_tx(
        self,
        address: Optional[str],
        hash_: str,
        block_height: Optional[int],
        payload: Any = None,
        label: int = LABEL,
    ) -> None:
        """Register a transaction; ``block_height=None`` means seen but not in a block."""
        metadata = [] if payload is None else [MetadataEntry(label=str(label), json_metadata=payload)]
        self.details[hash_] = TransactionDetail(
            hash=hash_,
            block="blockhash" if block_height else None,
            block_height=block_height,
            block_time=1_700_000_000 if block_height else None,
            metadata=metadata,
        )
        if address is not None:
            self.address_txs.setdefault(address, []).append(
                AddressTransaction(tx_hash=hash_, tx_index=0, block_height=block_height, block_time=1_700_000_000)
            )

    def fail_detail(self, hash_: str, status_code: int = 500) -> None:
        self.detail_errors[hash_] = LedgerApiError(
            f"Blockfrost API server error: {status_code}", status_code=status_code, endpoint=f"/txs/{hash_}"
        )


@pytest.fixture
def store(tmp_path):
    """Fresh SQLite record store in a temporary directory."""
    return RecordStore(tmp_path / "chainnotes.sqlite")


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def indexer_config():
    return IndexerConfig(start_height=0, metadata_label=LABEL, monitor_addresses=[OWNER])


@pytest.fixture
def indexer(store, ledger, indexer_config):
    idx = Indexer(store, ledger, indexer_config)
    assert idx.start()
    return idx


@pytest.fixture
def sync_config():
    return SyncConfig(timeout_minutes=10, max_retry_count=5)


@pytest.fixture
def lifecycle(store):
    return PendingTransactionManager(store)


@pytest.fixture
def owned_note(store):
    """A note owned by OWNER, already on the ledger."""
    return store.save_note(Note(title="Groceries", content="milk", created_by_wallet=OWNER, on_chain=True))
