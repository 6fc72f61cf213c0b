"""Error taxonomy for the gateway.

Every error maps onto one HTTP status and renders as ``{"error", "details"}``.
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class GatewayError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(
        self,
        error: str | None = None,
        details: Any = None,
        *,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.error = error or self.default_message
        self.details = details
        self.headers = headers or {}
        super().__init__(self.error)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class ClientInputError(GatewayError):
    """Malformed address, hash, tier or request body."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request body"


class AuthError(GatewayError):
    """Missing or invalid bearer identity."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class WalletOwnershipError(GatewayError):
    """Claimed wallet is not controlled by the authenticated identity."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "walletAddress does not belong to authenticated user"


class AccessDeniedError(GatewayError):
    """Authenticated caller lacks a right required by the endpoint."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFoundError(GatewayError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class RateLimitError(GatewayError):
    """Caller exceeded the fixed-window request budget."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests"

    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(
            details="Please wait before trying again",
            headers={"Retry-After": str(retry_after_seconds)},
        )
        self.retry_after_seconds = retry_after_seconds


class ChainUnavailableError(GatewayError):
    """The chain RPC could not answer a read the request depends on."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Chain RPC unavailable"


class PaymentInvalidError(GatewayError):
    """A payment proof failed verification."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Payment verification failed"


class ServiceConfigError(GatewayError):
    """A secret or credential the operation needs is not configured."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Service configuration error"
