"""On-chain payment verification.

Given a transaction hash presented as proof of payment, the verifier checks
that the transaction was mined successfully and does exactly what the
requested action needs:

1. transaction and receipt are both available
2. the receipt reports success
3. the sender is the payer's claimed wallet
4. the recipient is the expected contract or wallet
5. (contract calls) the call data matches the expected encoding exactly
6. (direct transfers) the value is at least the required amount
7. (optional) the contract's access predicate now returns true

Checks run in that order and stop at the first failure.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from creatorhub.services.chain import ChainError, ChainReader
from creatorhub.services.contract import CreatorHubReader, PaymentAction, encode_payment_call
from creatorhub.utils.validation import addresses_equal

logger = logging.getLogger(__name__)

TX_NOT_FOUND = "Transaction not found or not yet confirmed"
TX_FAILED = "Transaction failed on-chain"
SENDER_MISMATCH = "Transaction sender mismatch"
RECIPIENT_MISMATCH = "Transaction recipient mismatch"
CALL_DATA_MISMATCH = "Transaction call data mismatch"
INSUFFICIENT_AMOUNT = "Insufficient payment amount"
ACCESS_NOT_ACTIVATED = "Payment confirmed but access not activated on-chain"
ACCESS_STATE_UNAVAILABLE = "Payment confirmed but access state could not be read"


class VerificationStage(str, Enum):
    LOOKUP = "lookup"
    STATUS = "status"
    SENDER = "sender"
    RECIPIENT = "recipient"
    CALL_DATA = "call_data"
    AMOUNT = "amount"
    POSTCONDITION = "postcondition"


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    error: str | None = None
    stage: VerificationStage | None = None
    retryable: bool = False

    @classmethod
    def ok(cls) -> VerificationResult:
        return cls(valid=True)

    @classmethod
    def fail(
        cls,
        stage: VerificationStage,
        error: str,
        *,
        retryable: bool = False,
    ) -> VerificationResult:
        return cls(valid=False, error=error, stage=stage, retryable=retryable)


Postcondition = Callable[[], Awaitable[bool]]


class PaymentVerifier:
    """Verify payment proofs against the chain."""

    def __init__(self, chain: ChainReader, hub: CreatorHubReader) -> None:
        self._chain = chain
        self._hub = hub

    async def verify_contract_call(
        self,
        *,
        tx_hash: str,
        payer: str,
        action: PaymentAction,
        target: int | str,
        check_access: bool = True,
    ) -> VerificationResult:
        """Verify a payment made by calling the CreatorHub contract.

        Args:
            tx_hash: Transaction hash supplied in ``X-PAYMENT``.
            payer: Wallet the caller claims paid.
            action: Rent, buy or subscribe.
            target: Content id for rent/buy, creator address for subscribe.
            check_access: Also require the contract's access predicate to hold.

        Returns:
            A ``VerificationResult``; never raises for chain failures.
        """
        expected_data = encode_payment_call(action, target)

        async def _has_access() -> bool:
            return await self._hub.has_access_for(action, payer, target)

        return await self._verify(
            tx_hash=tx_hash,
            payer=payer,
            recipient=self._hub.address,
            expected_data=expected_data,
            min_amount=None,
            postcondition=_has_access if check_access else None,
        )

    async def verify_direct_transfer(
        self,
        *,
        tx_hash: str,
        payer: str,
        recipient: str,
        min_amount: int,
        postcondition: Postcondition | None = None,
    ) -> VerificationResult:
        """Verify a native value transfer straight to ``recipient``."""
        return await self._verify(
            tx_hash=tx_hash,
            payer=payer,
            recipient=recipient,
            expected_data=None,
            min_amount=min_amount,
            postcondition=postcondition,
        )

    async def _verify(
        self,
        *,
        tx_hash: str,
        payer: str,
        recipient: str,
        expected_data: str | None,
        min_amount: int | None,
        postcondition: Postcondition | None,
    ) -> VerificationResult:
        try:
            tx, receipt = await asyncio.gather(
                self._chain.get_transaction(tx_hash),
                self._chain.get_transaction_receipt(tx_hash),
            )
        except ChainError as exc:
            logger.info("Lookup for %s failed (%s): %s", tx_hash, exc.kind.value, exc.message)
            return VerificationResult.fail(VerificationStage.LOOKUP, TX_NOT_FOUND, retryable=True)

        if not receipt.succeeded:
            logger.warning("Payment %s reverted on-chain", tx_hash)
            return VerificationResult.fail(VerificationStage.STATUS, TX_FAILED)

        if not addresses_equal(tx.sender, payer):
            logger.warning("Payment %s sent by %s, expected %s", tx_hash, tx.sender, payer)
            return VerificationResult.fail(VerificationStage.SENDER, SENDER_MISMATCH)

        if not addresses_equal(tx.to, recipient):
            logger.warning("Payment %s sent to %s, expected %s", tx_hash, tx.to, recipient)
            return VerificationResult.fail(VerificationStage.RECIPIENT, RECIPIENT_MISMATCH)

        if expected_data is not None and tx.input.lower() != expected_data.lower():
            logger.warning(
                "Payment %s call data %s, expected %s", tx_hash, tx.input, expected_data
            )
            return VerificationResult.fail(VerificationStage.CALL_DATA, CALL_DATA_MISMATCH)

        if min_amount is not None and tx.value < min_amount:
            logger.warning("Payment %s value %d below required %d", tx_hash, tx.value, min_amount)
            return VerificationResult.fail(VerificationStage.AMOUNT, INSUFFICIENT_AMOUNT)

        if postcondition is not None:
            try:
                granted = await postcondition()
            except ChainError as exc:
                logger.warning("Access post-check for %s failed: %s", tx_hash, exc.message)
                return VerificationResult.fail(
                    VerificationStage.POSTCONDITION,
                    ACCESS_STATE_UNAVAILABLE,
                    retryable=True,
                )
            if not granted:
                return VerificationResult.fail(
                    VerificationStage.POSTCONDITION,
                    ACCESS_NOT_ACTIVATED,
                    retryable=True,
                )

        return VerificationResult.ok()
