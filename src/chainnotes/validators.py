"""Format checks for ledger identifiers and tracked-transaction payloads."""

from __future__ import annotations

import re
from typing import Optional

from .errors import ValidationError

TX_HASH_LENGTH = 64
MAX_ADDRESS_LENGTH = 150
MIN_ADDRESS_LENGTH = 58
MAX_METADATA_BYTES = 65535

_HEX_RE = re.compile(r"^[a-fA-F0-9]+$")
_ADDRESS_CHARS_RE = re.compile(r"^[a-z0-9_]+$")

# bech32 data-part alphabet
_BECH32_CHARSET = set("qpzry9x8gf2tvdw0s3jn54khce6mua7l")
_ADDRESS_PREFIXES = ("addr_test", "addr")


def normalize_tx_hash(tx_hash: str) -> str:
    """Validate a transaction hash and return it lowercased.

    Raises:
        ValidationError: If the hash is not exactly 64 hexadecimal characters
    """
    if not tx_hash or not tx_hash.strip():
        raise ValidationError("Transaction hash cannot be empty")
    tx_hash = tx_hash.strip()
    if len(tx_hash) != TX_HASH_LENGTH:
        raise ValidationError(f"Transaction hash must be exactly {TX_HASH_LENGTH} characters long")
    if not _HEX_RE.match(tx_hash):
        raise ValidationError("Transaction hash must contain only hexadecimal characters (0-9, a-f, A-F)")
    return tx_hash.lower()


def is_valid_bech32_address(address: Optional[str]) -> bool:
    """Strict shape check for a Cardano payment address.

    Accepts mainnet (``addr1...``) and testnet (``addr_test1...``) addresses
    whose data part uses only the bech32 alphabet. The checksum is not
    verified.
    """
    if not address:
        return False
    if len(address) < MIN_ADDRESS_LENGTH or len(address) > MAX_ADDRESS_LENGTH:
        return False
    if not _ADDRESS_CHARS_RE.match(address):
        return False
    hrp, sep, data = address.partition("1")
    if not sep or hrp not in _ADDRESS_PREFIXES or not data:
        return False
    return all(c in _BECH32_CHARSET for c in data)


def validate_wallet_address(address: Optional[str]) -> str:
    if address is None or not address.strip():
        raise ValidationError("Wallet address cannot be empty")
    address = address.strip()
    if len(address) > MAX_ADDRESS_LENGTH:
        raise ValidationError(f"Wallet address must not exceed {MAX_ADDRESS_LENGTH} characters")
    return address


def validate_metadata_size(metadata: Optional[str], *, allow_empty: bool) -> Optional[str]:
    if metadata is None or not metadata.strip():
        if not allow_empty:
            raise ValidationError("Metadata cannot be empty for CREATE or UPDATE transactions")
        return None
    if len(metadata.encode("utf-8")) > MAX_METADATA_BYTES:
        raise ValidationError("Metadata is too large")
    return metadata
