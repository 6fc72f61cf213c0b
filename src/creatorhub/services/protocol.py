"""x402 challenge and settlement logic.

A payment request runs in two rounds. Without an ``X-PAYMENT`` header the
caller gets a 402 challenge carrying ``PaymentMetadata`` built from live
on-chain prices. With the header, the transaction hash it carries is
verified and the activation result is returned, cached under the caller's
idempotency key.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from creatorhub.core.errors import (
    ChainUnavailableError,
    ClientInputError,
    NotFoundError,
    PaymentInvalidError,
)
from creatorhub.core.settings import ZERO_ADDRESS, Settings
from creatorhub.schemas.payment import PaymentMetadata
from creatorhub.services.chain import ChainError
from creatorhub.services.contract import CreatorHubReader, CreatorRecord, PaymentAction
from creatorhub.services.idempotency import IdempotencyStore
from creatorhub.services.verifier import PaymentVerifier, VerificationResult
from creatorhub.utils.validation import addresses_equal, is_valid_transaction_hash

logger = logging.getLogger(__name__)

ACCEPT_ERC20_TRANSFER = "erc20-transfer"
ACCEPT_NATIVE_TRANSFER = "native-transfer"

# Seconds a client should wait before retrying an unconfirmed payment
UNCONFIRMED_RETRY_AFTER_SECONDS = 5

# Idempotency namespaces, one per payable endpoint
SCOPE_CONTENT = "content"
SCOPE_SUBSCRIBE = "subscribe"
SCOPE_TRANSFER = "transfer"


def challenge_headers(
    metadata: PaymentMetadata,
    accept: str = ACCEPT_ERC20_TRANSFER,
    token_symbol: str | None = None,
) -> dict[str, str]:
    """Headers that accompany a 402 challenge body.

    Token amounts are labelled ``<SYMBOL>_BASE_UNITS``, or plain ``BASE_UNITS``
    when the token symbol is unknown.
    """
    if metadata.is_native:
        unit = "WEI"
    elif token_symbol:
        unit = f"{token_symbol.upper()}_BASE_UNITS"
    else:
        unit = "BASE_UNITS"
    return {
        "X-Accept-Payment": accept,
        "X-Payment-Required": f"{metadata.amount} {unit} on chain {metadata.chain_id}",
        "X-Payment-Chain-Id": str(metadata.chain_id),
        "X-Payment-Token": metadata.token_address,
        "X-Payment-Amount": metadata.amount,
        "X-Payment-Recipient": metadata.recipient,
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
    }


def validate_payment_proof(proof: str) -> None:
    """Reject a malformed ``X-PAYMENT`` value before any lookup."""
    if not is_valid_transaction_hash(proof):
        raise ClientInputError(
            "Invalid transaction hash format",
            "X-PAYMENT must be a 0x-prefixed 64 hex character transaction hash",
        )


class X402Protocol:
    """Quote prices and settle payment proofs for CreatorHub actions."""

    def __init__(
        self,
        *,
        hub: CreatorHubReader,
        verifier: PaymentVerifier,
        idempotency: IdempotencyStore,
        config: Settings,
    ) -> None:
        self._hub = hub
        self._verifier = verifier
        self._idempotency = idempotency
        self._config = config

    # --- Quotes ---------------------------------------------------------------------
    async def quote_content(self, content_id: str, action: PaymentAction) -> PaymentMetadata:
        """Build the 402 metadata for renting or buying ``content_id``.

        Raises:
            ClientInputError: If the content cannot be paid for with this action.
            ChainUnavailableError: If the content record cannot be read.
        """
        try:
            content = await self._hub.get_content(int(content_id))
        except ChainError as exc:
            logger.error("Failed to read content %s: %s", content_id, exc.message)
            raise ChainUnavailableError(details="Failed to fetch content price") from exc

        if not content.active:
            raise ClientInputError("Content is not active")
        if content.is_free:
            raise ClientInputError("Content is free and does not require payment")
        if not addresses_equal(content.payment_token, self._config.payment_token_address):
            raise ClientInputError(
                f"Content is not configured for {self._config.payment_token_symbol} x402 payments"
            )

        amount = content.price_for(action)
        if amount <= 0:
            raise ClientInputError("Requested payment type is not available for this content")

        return PaymentMetadata(
            chain_id=self._config.chain_id,
            token_address=self._config.payment_token_address,
            amount=str(amount),
            recipient=self._hub.address,
            payment_parameter={
                "contentId": content_id,
                "purchaseType": action.value,
                "action": action.value,
            },
        )

    async def quote_subscription(self, creator: str) -> PaymentMetadata:
        record = await self._registered_creator(creator)
        return PaymentMetadata(
            chain_id=self._config.chain_id,
            token_address=self._config.payment_token_address,
            amount=str(record.subscription_price),
            recipient=self._hub.address,
            payment_parameter={"minerOf": creator, "action": PaymentAction.SUBSCRIBE.value},
        )

    async def quote_direct_subscription(self, creator: str) -> PaymentMetadata:
        """Quote a subscription paid by a native transfer straight to the creator."""
        record = await self._registered_creator(creator)
        return PaymentMetadata(
            chain_id=self._config.chain_id,
            token_address=ZERO_ADDRESS,
            amount=str(record.subscription_price),
            recipient=creator,
            payment_parameter={"minerOf": creator, "action": PaymentAction.SUBSCRIBE.value},
        )

    async def _registered_creator(self, creator: str) -> CreatorRecord:
        try:
            record = await self._hub.get_creator(creator)
        except ChainError as exc:
            logger.error("Failed to read creator %s: %s", creator, exc.message)
            raise ChainUnavailableError(details="Failed to fetch subscription price") from exc

        if not record.is_registered:
            raise NotFoundError("Creator not registered")
        if record.subscription_price <= 0:
            raise ClientInputError("Creator subscription price is invalid")
        return record

    # --- Settlement -----------------------------------------------------------------
    async def settle_content(
        self,
        *,
        proof: str,
        user_id: str,
        payer: str,
        content_id: str,
        action: PaymentAction,
        idempotency_key: str | None,
    ) -> dict[str, Any]:
        async def verify() -> VerificationResult:
            return await self._verifier.verify_contract_call(
                tx_hash=proof,
                payer=payer,
                action=action,
                target=int(content_id),
            )

        def activation() -> dict[str, Any]:
            return {
                "status": "activated",
                "action": action.value,
                "contentId": content_id,
                "transactionHash": proof,
            }

        return await self._settle(
            proof=proof,
            cache_key=self._cache_key(SCOPE_CONTENT, user_id, idempotency_key),
            verify=verify,
            activation=activation,
        )

    async def settle_subscription(
        self,
        *,
        proof: str,
        user_id: str,
        payer: str,
        creator: str,
        tier_id: int,
        idempotency_key: str | None,
    ) -> dict[str, Any]:
        async def verify() -> VerificationResult:
            return await self._verifier.verify_contract_call(
                tx_hash=proof,
                payer=payer,
                action=PaymentAction.SUBSCRIBE,
                target=creator,
            )

        return await self._settle(
            proof=proof,
            cache_key=self._cache_key(SCOPE_SUBSCRIBE, user_id, idempotency_key),
            verify=verify,
            activation=lambda: self._subscription_activation(creator, tier_id, proof),
        )

    async def settle_direct_subscription(
        self,
        *,
        proof: str,
        user_id: str,
        payer: str,
        metadata: PaymentMetadata,
        tier_id: int,
        idempotency_key: str | None,
    ) -> dict[str, Any]:
        creator = metadata.recipient

        async def verify() -> VerificationResult:
            return await self._verifier.verify_direct_transfer(
                tx_hash=proof,
                payer=payer,
                recipient=creator,
                min_amount=metadata.amount_base_units,
            )

        return await self._settle(
            proof=proof,
            cache_key=self._cache_key(SCOPE_TRANSFER, user_id, idempotency_key),
            verify=verify,
            activation=lambda: self._subscription_activation(creator, tier_id, proof),
        )

    def _subscription_activation(self, creator: str, tier_id: int, proof: str) -> dict[str, Any]:
        starts_at = datetime.now(UTC)
        expires_at = starts_at + timedelta(days=self._config.subscription_period_days)
        return {
            "status": "activated",
            "subscription": {
                "id": f"sub_{uuid.uuid4()}",
                "creatorAddress": creator,
                "tierId": tier_id,
                "status": "ACTIVE",
                "startsAt": starts_at.isoformat(),
                "expiresAt": expires_at.isoformat(),
                "transactionHash": proof,
            },
        }

    def replay(self, scope: str, user_id: str, idempotency_key: str | None) -> dict[str, Any] | None:
        """Return a previously settled result without touching the chain."""
        cache_key = self._cache_key(scope, user_id, idempotency_key)
        if cache_key is None:
            return None
        cached = self._idempotency.get(cache_key)
        if cached is not None:
            logger.info("Replaying settled result for %s", cache_key)
        return cached

    @staticmethod
    def _cache_key(scope: str, user_id: str, idempotency_key: str | None) -> str | None:
        # Keys are namespaced per caller so one user cannot read another's result.
        if not idempotency_key:
            return None
        return f"{scope}:{user_id}:{idempotency_key}"

    async def _settle(
        self,
        *,
        proof: str,
        cache_key: str | None,
        verify: Callable[[], Awaitable[VerificationResult]],
        activation: Callable[[], dict[str, Any]],
    ) -> dict[str, Any]:
        validate_payment_proof(proof)

        if cache_key is not None:
            cached = self._idempotency.get(cache_key)
            if cached is not None:
                logger.info("Replaying settled result for %s", cache_key)
                return cached

        result = await verify()
        if not result.valid:
            logger.warning(
                "Payment %s rejected at %s: %s",
                proof,
                result.stage.value if result.stage else "unknown",
                result.error,
            )
            headers = (
                {"Retry-After": str(UNCONFIRMED_RETRY_AFTER_SECONDS)} if result.retryable else None
            )
            details = None if self._config.is_production else result.error
            raise PaymentInvalidError(details=details, headers=headers)

        body = activation()
        if cache_key is not None:
            body = self._idempotency.set_if_absent(cache_key, body)
        logger.info("Payment %s settled", proof)
        return body
