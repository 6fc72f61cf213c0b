"""Input validation predicates.

All helpers are total: they return a boolean for any input and never raise.
"""

from __future__ import annotations

import re
from typing import Any

MIN_TIER_ID = 0
MAX_TIER_ID = 10
MAX_BLOB_ID_LENGTH = 64
MAX_UINT256 = 2**256 - 1

_WALLET_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")
_BLOB_ID_RE = re.compile(rf"^[a-zA-Z0-9_-]{{1,{MAX_BLOB_ID_LENGTH}}}$")
_NUMERIC_ID_RE = re.compile(r"^[0-9]{1,78}$")


def is_valid_wallet_address(value: Any) -> bool:
    return isinstance(value, str) and _WALLET_ADDRESS_RE.fullmatch(value) is not None


def is_valid_transaction_hash(value: Any) -> bool:
    return isinstance(value, str) and _TX_HASH_RE.fullmatch(value) is not None


def is_valid_tier_id(value: Any) -> bool:
    """Return True for an integer tier in [0, 10]; booleans are rejected."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return MIN_TIER_ID <= value <= MAX_TIER_ID


def is_valid_blob_id(value: Any) -> bool:
    """Return True for a legacy off-chain blob identifier."""
    return isinstance(value, str) and _BLOB_ID_RE.fullmatch(value) is not None


def is_numeric_content_id(value: Any) -> bool:
    """Return True for an on-chain premium content identifier.

    The id must fit the contract's uint256 content key.
    """
    if not isinstance(value, str) or _NUMERIC_ID_RE.fullmatch(value) is None:
        return False
    return int(value) <= MAX_UINT256


def is_valid_content_id(value: Any) -> bool:
    """Accept either a blob id or a numeric id within uint256 range.

    The caller decides which id space applies; this only checks shape.
    """
    return is_valid_blob_id(value) or is_numeric_content_id(value)


def normalize_address(address: str) -> str:
    return address.lower()


def addresses_equal(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return False
    return left.lower() == right.lower()
