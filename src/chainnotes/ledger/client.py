"""Blockfrost API client for reading Cardano ledger data."""

import logging
from typing import Any, Optional, Protocol

import requests

from ..config import BlockfrostConfig
from ..models.ledger import AddressTransaction, LatestBlock, MetadataEntry, TransactionDetail

logger = logging.getLogger(__name__)


class LedgerApiError(Exception):
    """Raised when a ledger API call fails.

    Attributes:
        status_code: HTTP status returned by the API, None for transport errors
        endpoint: API path that was requested
    """

    def __init__(self, message: str, status_code: Optional[int] = None, endpoint: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


class LedgerClient(Protocol):
    """Read-only ledger access used by the indexer and the sync worker."""

    network: Optional[str]

    def is_configured(self) -> bool: ...

    def latest_block(self) -> LatestBlock: ...

    def address_transactions(self, address: str, page: int = 1) -> list[AddressTransaction]: ...

    def transaction_detail(self, tx_hash: str) -> Optional[TransactionDetail]: ...


class BlockfrostClient:
    """Client for the Blockfrost Cardano API.

    Every call carries the configured timeout so a slow API cannot stall a
    scheduled sweep. A 404 on a transaction or address lookup is a normal
    "not found" outcome and is returned as None or an empty list.
    """

    def __init__(self, config: BlockfrostConfig):
        self.config = config
        self.network = config.network

    def is_configured(self) -> bool:
        return self.config.is_configured()

    def _url(self, endpoint: str) -> str:
        base_url = self.config.resolved_base_url() or ""
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return base_url + endpoint

    def _get(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Any:
        if not self.is_configured():
            raise LedgerApiError("Blockfrost is not properly configured", endpoint=endpoint)

        headers = {
            "project_id": self.config.project_id or "",
            "Content-Type": "application/json",
        }

        try:
            response = requests.get(
                self._url(endpoint),
                params=params,
                headers=headers,
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as e:
            raise LedgerApiError(f"Failed to connect to Blockfrost API: {e}", endpoint=endpoint) from e

        if response.status_code >= 400:
            kind = "server" if response.status_code >= 500 else "client"
            raise LedgerApiError(
                f"Blockfrost API {kind} error: {response.status_code} - {_error_text(response)}",
                status_code=response.status_code,
                endpoint=endpoint,
            )

        try:
            return response.json()
        except ValueError as e:
            raise LedgerApiError(
                f"Blockfrost API returned invalid JSON: {e}",
                status_code=response.status_code,
                endpoint=endpoint,
            ) from e

    def latest_block(self) -> LatestBlock:
        """Fetch the chain tip.

        Raises:
            LedgerApiError: If the API call fails
        """
        data = self._get("/blocks/latest")
        return LatestBlock(
            height=int(data["height"]),
            hash=data.get("hash", ""),
            time=data.get("time"),
            slot=data.get("slot"),
        )

    def block_transactions(self, block_hash_or_number: str) -> list[str]:
        """Fetch the transaction hashes included in a block."""
        if not block_hash_or_number or not str(block_hash_or_number).strip():
            raise ValueError("Block hash or number cannot be empty")
        data = self._get(f"/blocks/{block_hash_or_number}/txs")
        return [str(h) for h in data or []]

    def address_transactions(self, address: str, page: int = 1) -> list[AddressTransaction]:
        """Fetch one page of an address's transaction history.

        Args:
            address: Bech32 payment address
            page: 1-based page number; values below 1 are treated as 1

        Returns:
            Transactions on the page; empty if the address has no history
        """
        if not address or not address.strip():
            raise ValueError("Address cannot be empty")
        if page < 1:
            page = 1

        try:
            data = self._get(f"/addresses/{address}/transactions", params={"page": page})
        except LedgerApiError as e:
            if e.is_not_found:
                return []
            raise

        return [AddressTransaction(**row) for row in data or []]

    def transaction_metadata(self, tx_hash: str) -> list[MetadataEntry]:
        if not tx_hash or not tx_hash.strip():
            raise ValueError("Transaction hash cannot be empty")
        try:
            data = self._get(f"/txs/{tx_hash}/metadata")
        except LedgerApiError as e:
            if e.is_not_found:
                return []
            raise
        return [MetadataEntry(label=str(row.get("label")), json_metadata=row.get("json_metadata")) for row in data or []]

    def transaction_detail(self, tx_hash: str) -> Optional[TransactionDetail]:
        """Fetch a transaction and its metadata entries.

        Returns:
            The merged detail record, or None if the ledger does not know the hash yet

        Raises:
            LedgerApiError: For any failure other than 404
        """
        if not tx_hash or not tx_hash.strip():
            raise ValueError("Transaction hash cannot be empty")

        try:
            data = self._get(f"/txs/{tx_hash}")
        except LedgerApiError as e:
            if e.is_not_found:
                logger.debug(f"Transaction {tx_hash} not found on ledger")
                return None
            raise

        metadata = self.transaction_metadata(tx_hash)
        return TransactionDetail(
            hash=data.get("hash", tx_hash),
            block=data.get("block"),
            block_height=data.get("block_height"),
            block_time=data.get("block_time"),
            slot=data.get("slot"),
            fees=data.get("fees"),
            metadata=metadata,
        )


def _error_text(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] if response.text else ""
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)
