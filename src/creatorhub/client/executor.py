"""Turn x402 payment metadata into a confirmed on-chain transaction."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from creatorhub.schemas.payment import PaymentMetadata
from creatorhub.services.chain import ChainError, ChainReader, ChainReceipt
from creatorhub.services.contract import (
    ERC20_ALLOWANCE,
    ERC20_APPROVE,
    ERC20_BALANCE_OF,
    ERC20_TRANSFER,
    PaymentAction,
    encode_payment_call,
)
from creatorhub.utils.validation import addresses_equal, is_numeric_content_id, is_valid_wallet_address

from .wallet import WalletProvider, WalletRpcError

logger = logging.getLogger(__name__)

# Native balance kept back for gas on top of the payment amount (0.0001 ETH)
GAS_BUFFER_WEI = 100_000_000_000_000
CONFIRMATION_TIMEOUT_SECONDS = 60.0
RECEIPT_POLL_INTERVAL_SECONDS = 2.0


class PaymentErrorCode(str, Enum):
    INVALID_METADATA = "INVALID_METADATA"
    CHAIN_SWITCH_FAILED = "CHAIN_SWITCH_FAILED"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    USER_REJECTED = "USER_REJECTED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    RPC_ERROR = "RPC_ERROR"


class PaymentError(RuntimeError):
    def __init__(self, code: PaymentErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class PaymentExecutor:
    """Pay exactly what a 402 challenge asks for.

    Payments to the CreatorHub contract call the payable entry point named by
    ``paymentParameter`` (approving the token first when needed). Payments to
    any other recipient are a plain ERC-20 transfer, or a native transfer when
    the token is the zero address.
    """

    def __init__(
        self,
        wallet: WalletProvider,
        chain: ChainReader,
        *,
        creator_hub_address: str,
        confirmation_timeout: float = CONFIRMATION_TIMEOUT_SECONDS,
        poll_interval: float = RECEIPT_POLL_INTERVAL_SECONDS,
        gas_buffer_wei: int = GAS_BUFFER_WEI,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._wallet = wallet
        self._chain = chain
        self._hub_address = creator_hub_address
        self._confirmation_timeout = confirmation_timeout
        self._poll_interval = poll_interval
        self._gas_buffer_wei = gas_buffer_wei
        self._sleep = sleep

    async def execute(self, metadata: PaymentMetadata) -> str:
        """Send the payment described by ``metadata`` and return its hash.

        The hash is returned even if confirmation times out; the server will
        report the payment as not yet confirmed until it is mined.

        Raises:
            PaymentError: With a ``PaymentErrorCode`` describing the failure.
        """
        to_hub = addresses_equal(metadata.recipient, self._hub_address)
        self._validate(metadata, to_hub)
        await self._ensure_chain(metadata.chain_id)

        try:
            payer = await self._wallet.get_address()
        except WalletRpcError as exc:
            raise self._map_wallet_error(exc) from exc

        await self._check_balances(payer, metadata)

        amount = metadata.amount_base_units
        tx: dict[str, Any] = {"from": payer}
        if to_hub:
            if not metadata.is_native:
                await self._ensure_allowance(payer, metadata)
            tx["to"] = metadata.recipient
            tx["data"] = self._hub_call_data(metadata)
            if metadata.is_native:
                tx["value"] = hex(amount)
        elif metadata.is_native:
            tx["to"] = metadata.recipient
            tx["value"] = hex(amount)
        else:
            tx["to"] = metadata.token_address
            tx["data"] = ERC20_TRANSFER.encode_call(metadata.recipient, amount)

        tx_hash = await self._send(tx)
        logger.info("Payment submitted: %s", tx_hash)

        receipt = await self.wait_for_confirmation(tx_hash)
        if receipt is None:
            logger.warning("Payment %s not confirmed within %.0fs", tx_hash, self._confirmation_timeout)
            return tx_hash
        if not receipt.succeeded:
            raise PaymentError(PaymentErrorCode.TRANSACTION_FAILED, "Transaction failed on-chain")
        return tx_hash

    def _validate(self, metadata: PaymentMetadata, to_hub: bool) -> None:
        if metadata.amount_base_units <= 0:
            raise PaymentError(PaymentErrorCode.INVALID_METADATA, "Payment amount must be positive")
        if not is_valid_wallet_address(metadata.recipient) or int(metadata.recipient, 16) == 0:
            raise PaymentError(PaymentErrorCode.INVALID_METADATA, "Invalid payment recipient")
        if to_hub:
            try:
                self._hub_call_data(metadata)
            except (KeyError, ValueError) as exc:
                raise PaymentError(
                    PaymentErrorCode.INVALID_METADATA,
                    "paymentParameter does not describe a CreatorHub payment",
                ) from exc

    @staticmethod
    def _hub_call_data(metadata: PaymentMetadata) -> str:
        params = metadata.payment_parameter
        if "minerOf" in params:
            creator = str(params["minerOf"])
            if not is_valid_wallet_address(creator):
                raise ValueError("minerOf must be an address")
            return encode_payment_call(PaymentAction.SUBSCRIBE, creator)

        content_id = str(params["contentId"])
        if not is_numeric_content_id(content_id):
            raise ValueError("contentId must be numeric")
        action = PaymentAction.BUY if params.get("purchaseType") == "buy" else PaymentAction.RENT
        return encode_payment_call(action, int(content_id))

    async def _ensure_chain(self, chain_id: int) -> None:
        try:
            current = await self._wallet.get_chain_id()
            if current == chain_id:
                return
            logger.info("Switching wallet from chain %d to %d", current, chain_id)
            await self._wallet.request("wallet_switchEthereumChain", [{"chainId": hex(chain_id)}])
        except WalletRpcError as exc:
            if exc.user_rejected:
                raise PaymentError(PaymentErrorCode.USER_REJECTED, "Network switch rejected by user") from exc
            raise PaymentError(
                PaymentErrorCode.CHAIN_SWITCH_FAILED,
                f"Failed to switch to chain {chain_id}: {exc.message}",
            ) from exc

    async def _check_balances(self, payer: str, metadata: PaymentMetadata) -> None:
        amount = metadata.amount_base_units
        required_native = self._gas_buffer_wei + (amount if metadata.is_native else 0)
        try:
            native = await self._chain.get_balance(payer)
            if native < required_native:
                raise PaymentError(
                    PaymentErrorCode.INSUFFICIENT_FUNDS,
                    "Insufficient native balance for payment and gas",
                )
            if not metadata.is_native:
                (token_balance,) = await self._chain.call_function(
                    metadata.token_address, ERC20_BALANCE_OF, payer
                )
                if int(token_balance) < amount:
                    raise PaymentError(PaymentErrorCode.INSUFFICIENT_FUNDS, "Insufficient token balance")
        except ChainError as exc:
            # The wallet will refuse an unaffordable transaction anyway.
            logger.warning("Balance pre-flight skipped: %s", exc.message)

    async def _ensure_allowance(self, payer: str, metadata: PaymentMetadata) -> None:
        amount = metadata.amount_base_units
        try:
            (allowance,) = await self._chain.call_function(
                metadata.token_address, ERC20_ALLOWANCE, payer, metadata.recipient
            )
        except ChainError as exc:
            raise PaymentError(PaymentErrorCode.RPC_ERROR, f"Failed to read allowance: {exc.message}") from exc

        if int(allowance) >= amount:
            return

        logger.info("Approving %d base units for %s", amount, metadata.recipient)
        approve_hash = await self._send(
            {
                "from": payer,
                "to": metadata.token_address,
                "data": ERC20_APPROVE.encode_call(metadata.recipient, amount),
            }
        )
        receipt = await self.wait_for_confirmation(approve_hash)
        if receipt is None:
            raise PaymentError(PaymentErrorCode.TRANSACTION_FAILED, "Token approval was not confirmed in time")
        if not receipt.succeeded:
            raise PaymentError(PaymentErrorCode.TRANSACTION_FAILED, "Token approval failed on-chain")

    async def _send(self, tx: dict[str, Any]) -> str:
        try:
            return str(await self._wallet.request("eth_sendTransaction", [tx]))
        except WalletRpcError as exc:
            raise self._map_wallet_error(exc) from exc

    @staticmethod
    def _map_wallet_error(exc: WalletRpcError) -> PaymentError:
        if exc.user_rejected:
            return PaymentError(PaymentErrorCode.USER_REJECTED, "Transaction rejected by user")
        if "insufficient funds" in exc.message.lower():
            return PaymentError(PaymentErrorCode.INSUFFICIENT_FUNDS, "Insufficient funds for transaction")
        return PaymentError(PaymentErrorCode.RPC_ERROR, exc.message or "Wallet request failed")

    async def wait_for_confirmation(
        self,
        tx_hash: str,
        timeout: float | None = None,
    ) -> ChainReceipt | None:
        """Poll for a receipt; return None if none appears before ``timeout``."""
        deadline = time.monotonic() + (self._confirmation_timeout if timeout is None else timeout)
        while True:
            try:
                return await self._chain.get_transaction_receipt(tx_hash)
            except ChainError as exc:
                logger.debug("Receipt for %s not available yet: %s", tx_hash, exc.message)
            if time.monotonic() >= deadline:
                return None
            await self._sleep(self._poll_interval)
