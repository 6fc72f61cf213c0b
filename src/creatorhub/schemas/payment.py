"""Payment-related Pydantic schemas."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from creatorhub.core.settings import ZERO_ADDRESS
from creatorhub.utils.validation import (
    MAX_TIER_ID,
    MIN_TIER_ID,
    is_numeric_content_id,
    is_valid_wallet_address,
)

MAX_IDEMPOTENCY_KEY_LENGTH = 128


def _check_address(value: str, field_name: str) -> str:
    if not is_valid_wallet_address(value):
        raise ValueError(f"{field_name} must be a 0x-prefixed 40 hex character address")
    return value


class PaymentMetadata(BaseModel):
    """Body of a 402 Payment Required response."""

    model_config = ConfigDict(populate_by_name=True)

    chain_id: int = Field(..., alias="chainId")
    token_address: str = Field(..., alias="tokenAddress")
    amount: str = Field(..., description="Base-unit amount as a decimal string")
    recipient: str
    payment_parameter: dict[str, Any] = Field(default_factory=dict, alias="paymentParameter")

    @field_validator("amount")
    @classmethod
    def _amount_is_integer(cls, value: str) -> str:
        if not value.isdigit():
            raise ValueError("amount must be a non-negative integer string")
        return value

    @field_validator("token_address", "recipient")
    @classmethod
    def _addresses(cls, value: str, info: Any) -> str:
        return _check_address(value, info.field_name)

    @property
    def amount_base_units(self) -> int:
        return int(self.amount)

    @property
    def is_native(self) -> bool:
        return self.token_address.lower() == ZERO_ADDRESS

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ContentPaymentRequest(BaseModel):
    """Request body for renting or buying a piece of content."""

    model_config = ConfigDict(populate_by_name=True)

    content_id: str = Field(..., alias="contentId")
    action: Literal["rent", "buy"]
    wallet_address: str = Field(..., alias="walletAddress")
    idempotency_key: str | None = Field(
        None,
        alias="idempotencyKey",
        min_length=1,
        max_length=MAX_IDEMPOTENCY_KEY_LENGTH,
    )

    @field_validator("content_id")
    @classmethod
    def _numeric_content_id(cls, value: str) -> str:
        if not is_numeric_content_id(value):
            raise ValueError("contentId must be a numeric string within uint256 range")
        return value

    @field_validator("wallet_address")
    @classmethod
    def _wallet(cls, value: str) -> str:
        return _check_address(value, "walletAddress")


class SubscriptionRequest(BaseModel):
    """Request body for subscribing to a creator."""

    model_config = ConfigDict(populate_by_name=True)

    creator_address: str = Field(..., alias="creatorAddress")
    tier_id: StrictInt = Field(..., alias="tierId", ge=MIN_TIER_ID, le=MAX_TIER_ID)
    wallet_address: str = Field(..., alias="walletAddress")
    idempotency_key: str = Field(
        ...,
        alias="idempotencyKey",
        min_length=1,
        max_length=MAX_IDEMPOTENCY_KEY_LENGTH,
    )

    @field_validator("creator_address")
    @classmethod
    def _creator(cls, value: str) -> str:
        return _check_address(value, "creatorAddress")

    @field_validator("wallet_address")
    @classmethod
    def _wallet(cls, value: str) -> str:
        return _check_address(value, "walletAddress")


class AuthorizeRequest(BaseModel):
    """Request body for a content authorization check."""

    model_config = ConfigDict(populate_by_name=True)

    wallet_address: str = Field(..., alias="walletAddress")
    creator_address: str | None = Field(None, alias="creatorAddress")

    @field_validator("wallet_address")
    @classmethod
    def _wallet(cls, value: str) -> str:
        return _check_address(value, "walletAddress")

    @field_validator("creator_address")
    @classmethod
    def _creator(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return _check_address(value, "creatorAddress")


class FetchInstructionPayload(BaseModel):
    """A fetch instruction presented back to the gateway for verification."""

    model_config = ConfigDict(populate_by_name=True)

    blob_id: str = Field(..., alias="blobId")
    user_wallet: str = Field(..., alias="userWallet")
    issued_at: int = Field(..., alias="issuedAt")
    expiry: int
    nonce: int
    signature: str
