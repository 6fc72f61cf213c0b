"""Wallet providers used by the payment executor.

Providers follow the EIP-1193 shape: a single async ``request(method,
params)`` entry point that signs and sends on the caller's behalf.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

logger = logging.getLogger(__name__)

USER_REJECTED_CODE = 4001
UNAUTHORIZED_CODE = 4100
INTERNAL_ERROR_CODE = -32603


class WalletRpcError(RuntimeError):
    """Error returned by a wallet provider."""

    def __init__(self, code: int | None, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    @property
    def user_rejected(self) -> bool:
        return self.code == USER_REJECTED_CODE or "user rejected" in self.message.lower()


class WalletProvider(ABC):
    """Minimal async EIP-1193 provider."""

    @abstractmethod
    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        """Forward ``method`` to the wallet and return its result."""

    async def get_address(self) -> str:
        accounts = await self.request("eth_accounts")
        if not accounts:
            accounts = await self.request("eth_requestAccounts")
        if not accounts:
            raise WalletRpcError(UNAUTHORIZED_CODE, "No wallet account available")
        return str(accounts[0])

    async def get_chain_id(self) -> int:
        result = await self.request("eth_chainId")
        return int(result, 16) if isinstance(result, str) else int(result)


class JsonRpcWalletProvider(WalletProvider):
    """Provider backed by a node or dev wallet exposing unlocked accounts."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        try:
            response = await self._http_client.post(self._rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise WalletRpcError(INTERNAL_ERROR_CODE, f"Wallet RPC unreachable: {exc}") from exc
        except ValueError as exc:
            raise WalletRpcError(INTERNAL_ERROR_CODE, "Wallet RPC returned invalid JSON") from exc

        error = body.get("error")
        if error:
            logger.debug("Wallet call %s failed: %s", method, error)
            if isinstance(error, dict):
                raise WalletRpcError(error.get("code"), str(error.get("message", "")), error.get("data"))
            raise WalletRpcError(None, str(error))
        return body.get("result")

    async def close(self) -> None:
        await self._http_client.aclose()
