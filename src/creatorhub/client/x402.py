"""Drive the two-round x402 exchange against the gateway."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from creatorhub.schemas.payment import PaymentMetadata
from creatorhub.services.contract import PaymentAction

from .executor import PaymentExecutor
from .proof_cache import LocalProofCache

logger = logging.getLogger(__name__)

PAYMENT_HEADER = "X-PAYMENT"


class X402ClientError(RuntimeError):
    """The gateway answered with an error the client cannot resolve."""

    def __init__(self, status_code: int, body: Any) -> None:
        message = body.get("error") if isinstance(body, dict) else str(body)
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.body = body


class X402Client:
    """Request, pay, and settle in one call.

    Each logical purchase gets a fresh idempotency key that is reused for
    every settlement retry, so a lost response never leads to a different
    outcome.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        executor: PaymentExecutor,
        *,
        wallet_address: str,
        http_client: httpx.AsyncClient | None = None,
        settle_attempts: int = 3,
        retry_delay: float = 5.0,
        proof_cache: LocalProofCache | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=30.0)
        self._headers = {"Authorization": f"Bearer {token}"}
        self._executor = executor
        self.wallet_address = wallet_address
        self._settle_attempts = max(1, settle_attempts)
        self._retry_delay = retry_delay
        self._proof_cache = proof_cache
        self._sleep = sleep

    async def rent(self, content_id: str) -> dict[str, Any]:
        return await self.pay(
            "/api/v1/x402/content",
            {"contentId": content_id, "action": PaymentAction.RENT.value},
        )

    async def buy(self, content_id: str) -> dict[str, Any]:
        return await self.pay(
            "/api/v1/x402/content",
            {"contentId": content_id, "action": PaymentAction.BUY.value},
        )

    async def subscribe(self, creator: str, tier_id: int = 0) -> dict[str, Any]:
        return await self.pay(
            "/api/v1/x402/subscribe",
            {"creatorAddress": creator, "tierId": tier_id},
        )

    async def subscribe_by_transfer(self, creator: str, tier_id: int = 0) -> dict[str, Any]:
        return await self.pay(
            "/api/v1/x402/transfer",
            {"creatorAddress": creator, "tierId": tier_id},
        )

    async def pay(self, path: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Run both rounds: fetch the challenge, pay it, then settle."""
        body = {
            **fields,
            "walletAddress": self.wallet_address,
            "idempotencyKey": str(uuid.uuid4()),
        }
        response = await self._http.post(path, json=body, headers=self._headers)
        if response.status_code != httpx.codes.PAYMENT_REQUIRED:
            raise X402ClientError(response.status_code, self._json(response))

        metadata = PaymentMetadata.model_validate(response.json())
        logger.info("Paying %s to %s", metadata.amount, metadata.recipient)
        tx_hash = await self._executor.execute(metadata)
        return await self.settle(path, body, tx_hash)

    async def settle(self, path: str, body: dict[str, Any], tx_hash: str) -> dict[str, Any]:
        """Submit ``tx_hash`` as proof, retrying while it is unconfirmed.

        This can be called directly when the price and recipient are already
        known, skipping the challenge round.
        """
        body = {"walletAddress": self.wallet_address, **body}
        body.setdefault("idempotencyKey", str(uuid.uuid4()))
        headers = {**self._headers, PAYMENT_HEADER: tx_hash}

        attempt = 0
        while True:
            attempt += 1
            response = await self._http.post(path, json=body, headers=headers)
            if response.is_success:
                result = response.json()
                self._remember(body, tx_hash)
                return result

            retry_after = response.headers.get("Retry-After")
            retryable = response.status_code == httpx.codes.BAD_REQUEST and retry_after is not None
            if not retryable or attempt >= self._settle_attempts:
                raise X402ClientError(response.status_code, self._json(response))

            delay = self._retry_delay
            if retry_after.isdigit():
                delay = max(delay, float(retry_after))
            logger.info("Payment %s not settled yet (attempt %d); retrying", tx_hash, attempt)
            await self._sleep(delay)

    def _remember(self, body: dict[str, Any], tx_hash: str) -> None:
        if self._proof_cache is None:
            return
        if "contentId" in body:
            content_id = str(body["contentId"])
            if body.get("action") == PaymentAction.BUY.value:
                self._proof_cache.record_purchase(self.wallet_address, content_id, tx_hash)
            else:
                self._proof_cache.record_rental(self.wallet_address, content_id, tx_hash)
        elif "creatorAddress" in body:
            self._proof_cache.record_subscription(
                self.wallet_address, str(body["creatorAddress"]), tx_hash
            )

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    async def close(self) -> None:
        await self._http.aclose()
