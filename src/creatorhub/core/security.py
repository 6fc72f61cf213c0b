"""Signature utilities built on HMAC-SHA256."""
from __future__ import annotations

import binascii
import hashlib
import hmac
import json
from collections.abc import Mapping
from typing import Any


def canonical_json(payload: Mapping[str, Any]) -> bytes:
    """Serialize ``payload`` to compact JSON preserving insertion order.

    This is not a canonical encoding: signer and verifier must build the
    payload with the same field order.
    """
    return json.dumps(dict(payload), separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def create_signature(payload: Mapping[str, Any], secret: str) -> str:
    """Return the hex-encoded HMAC-SHA256 of ``payload`` under ``secret``."""
    return hmac.new(secret.encode("utf-8"), canonical_json(payload), hashlib.sha256).hexdigest()


def verify_signature(payload: Mapping[str, Any], signature: str, secret: str) -> bool:
    """Verify an HMAC signature in constant time.

    Args:
        payload: Fields that were signed, in issuance order.
        signature: Hex-encoded signature supplied by the bearer.
        secret: Shared signing secret.

    Returns:
        True if ``signature`` matches the recomputed digest; False otherwise,
        including for malformed hex or a digest of the wrong length.
    """
    expected = bytes.fromhex(create_signature(payload, secret))
    try:
        provided = binascii.unhexlify(signature)
    except (binascii.Error, TypeError, ValueError):
        return False
    if len(provided) != len(expected):
        return False
    return hmac.compare_digest(provided, expected)
