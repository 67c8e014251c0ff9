"""Read-only ledger access (Blockfrost)."""

from .client import BlockfrostClient, LedgerApiError, LedgerClient

__all__ = ["BlockfrostClient", "LedgerApiError", "LedgerClient"]
