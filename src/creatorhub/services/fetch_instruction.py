"""Signed, time-boxed fetch instructions for authorized content reads."""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from creatorhub.core.security import create_signature, verify_signature

logger = logging.getLogger(__name__)

NONCE_UPPER_BOUND = 1_000_000


@dataclass(frozen=True)
class FetchInstruction:
    """Bearer capability to fetch one blob for one wallet until ``expiry``.

    Times are Unix milliseconds.
    """

    blob_id: str
    user_wallet: str
    issued_at: int
    expiry: int
    nonce: int
    signature: str

    def signed_payload(self) -> dict[str, Any]:
        # Field order is part of the signature.
        return {
            "blobId": self.blob_id,
            "userWallet": self.user_wallet,
            "issuedAt": self.issued_at,
            "expiry": self.expiry,
            "nonce": self.nonce,
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.signed_payload(), "signature": self.signature}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FetchInstruction:
        return cls(
            blob_id=str(data["blobId"]),
            user_wallet=str(data["userWallet"]),
            issued_at=int(data["issuedAt"]),
            expiry=int(data["expiry"]),
            nonce=int(data["nonce"]),
            signature=str(data["signature"]),
        )


@dataclass(frozen=True)
class FetchVerification:
    valid: bool
    reason: str | None = None


def _now_ms() -> int:
    return int(time.time() * 1000)


class FetchInstructionSigner:
    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int = 3600,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._secret = secret
        self._ttl_ms = ttl_seconds * 1000
        self._clock_ms = clock_ms

    def issue(self, blob_id: str, user_wallet: str) -> FetchInstruction:
        issued_at = self._clock_ms()
        unsigned = FetchInstruction(
            blob_id=blob_id,
            user_wallet=user_wallet,
            issued_at=issued_at,
            expiry=issued_at + self._ttl_ms,
            nonce=secrets.randbelow(NONCE_UPPER_BOUND),
            signature="",
        )
        signature = create_signature(unsigned.signed_payload(), self._secret)
        logger.debug("Issued fetch instruction for blob %s", blob_id)
        return replace(unsigned, signature=signature)

    def verify(self, instruction: FetchInstruction) -> FetchVerification:
        """Check signature and expiry; both must pass."""
        if not verify_signature(instruction.signed_payload(), instruction.signature, self._secret):
            return FetchVerification(valid=False, reason="Invalid signature")
        if self._clock_ms() >= instruction.expiry:
            return FetchVerification(valid=False, reason="Fetch instruction expired")
        return FetchVerification(valid=True)
