"""Read-only JSON-RPC access to the settlement chain.

The gateway never signs or broadcasts; it only fetches transactions,
receipts and the results of ``eth_call``. Failures are normalised into
``ChainError`` so callers can tell a transient outage from a revert or a
transaction the node has not seen yet.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
from eth_abi.exceptions import DecodingError

from creatorhub.core.settings import settings

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from creatorhub.services.contract import ContractFunction

logger = logging.getLogger(__name__)

# JSON-RPC error code used by geth-style nodes for execution reverts
RPC_EXECUTION_REVERTED = 3

RECEIPT_SUCCESS = "success"
RECEIPT_FAILED = "failed"


class ChainErrorKind(str, Enum):
    RPC_UNAVAILABLE = "rpc_unavailable"
    CALL_REVERTED = "call_reverted"
    NOT_FOUND = "not_found"


class ChainError(RuntimeError):
    """Raised when a chain read cannot produce a usable answer."""

    def __init__(self, kind: ChainErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.kind in (ChainErrorKind.RPC_UNAVAILABLE, ChainErrorKind.NOT_FOUND)


@dataclass(frozen=True)
class ChainTransaction:
    """Subset of ``eth_getTransactionByHash`` the verifier relies on."""

    hash: str
    sender: str
    to: str | None
    value: int
    input: str
    block_number: int | None

    @classmethod
    def from_rpc(cls, data: dict[str, Any]) -> ChainTransaction:
        block = data.get("blockNumber")
        return cls(
            hash=str(data["hash"]),
            sender=str(data["from"]),
            to=data.get("to"),
            value=_hex_to_int(data.get("value")),
            input=str(data.get("input") or data.get("data") or "0x"),
            block_number=int(block, 16) if block else None,
        )


@dataclass(frozen=True)
class ChainReceipt:
    hash: str
    status: str
    block_number: int

    @property
    def succeeded(self) -> bool:
        return self.status == RECEIPT_SUCCESS

    @classmethod
    def from_rpc(cls, data: dict[str, Any]) -> ChainReceipt:
        status = RECEIPT_SUCCESS if _hex_to_int(data.get("status")) == 1 else RECEIPT_FAILED
        return cls(
            hash=str(data["transactionHash"]),
            status=status,
            block_number=_hex_to_int(data.get("blockNumber")),
        )


def _hex_to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(str(value), 16)


class ChainReader:
    """JSON-RPC client for the settlement chain."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._http_client = http_client
        self._request_id = 0

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def _call(self, method: str, params: list[Any] | None = None) -> Any:
        """Make a JSON-RPC call and return its ``result`` member."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        client = self._get_client()
        try:
            response = await client.post(
                self._rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            logger.warning("RPC %s failed: %s", method, exc)
            raise ChainError(ChainErrorKind.RPC_UNAVAILABLE, f"RPC request failed: {exc}") from exc
        except ValueError as exc:
            raise ChainError(ChainErrorKind.RPC_UNAVAILABLE, "RPC returned invalid JSON") from exc

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            message = str(error.get("message", error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            if code == RPC_EXECUTION_REVERTED or "revert" in message.lower():
                raise ChainError(ChainErrorKind.CALL_REVERTED, message)
            raise ChainError(ChainErrorKind.RPC_UNAVAILABLE, f"RPC error: {message}")

        return body.get("result")

    async def get_transaction(self, tx_hash: str) -> ChainTransaction:
        result = await self._call("eth_getTransactionByHash", [tx_hash])
        if result is None:
            raise ChainError(ChainErrorKind.NOT_FOUND, f"Transaction {tx_hash} not found")
        return ChainTransaction.from_rpc(result)

    async def get_transaction_receipt(self, tx_hash: str) -> ChainReceipt:
        result = await self._call("eth_getTransactionReceipt", [tx_hash])
        if result is None:
            raise ChainError(ChainErrorKind.NOT_FOUND, f"Receipt for {tx_hash} not found")
        return ChainReceipt.from_rpc(result)

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        """Execute ``eth_call`` and return the raw hex result."""
        result = await self._call("eth_call", [{"to": to, "data": data}, block])
        return str(result or "0x")

    async def call_function(
        self,
        address: str,
        function: ContractFunction,
        *args: Any,
    ) -> tuple[Any, ...]:
        """Call a view function and decode its outputs."""
        raw = await self.call(address, function.encode_call(*args))
        try:
            return function.decode_output(raw)
        except (DecodingError, ValueError) as exc:
            # An empty result usually means the address has no code.
            raise ChainError(
                ChainErrorKind.CALL_REVERTED,
                f"Could not decode {function.signature} result from {address}",
            ) from exc

    async def get_balance(self, address: str) -> int:
        result = await self._call("eth_getBalance", [address, "latest"])
        return _hex_to_int(result)

    async def get_block_number(self) -> int:
        result = await self._call("eth_blockNumber")
        return _hex_to_int(result)

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


_chain_reader: ChainReader | None = None


def get_chain_reader() -> ChainReader:
    """Return the process-wide chain reader."""
    global _chain_reader
    if _chain_reader is None:
        _chain_reader = ChainReader(settings.rpc_url, timeout=settings.rpc_timeout_seconds)
    return _chain_reader


async def close_chain_reader() -> None:
    global _chain_reader
    if _chain_reader is not None:
        await _chain_reader.close()
        _chain_reader = None
