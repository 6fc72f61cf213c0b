"""x402 payment endpoints for the CreatorHub API."""

from typing import Annotated, Any

from fastapi import APIRouter, Header, status
from fastapi.responses import JSONResponse

from creatorhub.core.settings import settings
from creatorhub.schemas.payment import (
    ContentPaymentRequest,
    PaymentMetadata,
    SubscriptionRequest,
)
from creatorhub.services.contract import PaymentAction
from creatorhub.services.protocol import (
    ACCEPT_ERC20_TRANSFER,
    ACCEPT_NATIVE_TRANSFER,
    SCOPE_CONTENT,
    SCOPE_SUBSCRIBE,
    SCOPE_TRANSFER,
    challenge_headers,
    validate_payment_proof,
)

from ..dependencies import (
    BearerDep,
    IdentityServiceDep,
    ProtocolDep,
    RateLimiterDep,
    authenticate,
    enforce_rate_limit,
    require_wallet,
)

router = APIRouter(prefix="/x402", tags=["x402"])

PaymentProofHeader = Annotated[str | None, Header(alias="X-PAYMENT")]


def _payment_required(metadata: PaymentMetadata, accept: str = ACCEPT_ERC20_TRANSFER) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        content=metadata.to_body(),
        headers=challenge_headers(metadata, accept, settings.payment_token_symbol),
    )


@router.post(
    "/content",
    responses={status.HTTP_402_PAYMENT_REQUIRED: {"model": PaymentMetadata}},
)
async def pay_for_content(
    payload: ContentPaymentRequest,
    credentials: BearerDep,
    identity_service: IdentityServiceDep,
    rate_limiter: RateLimiterDep,
    protocol: ProtocolDep,
    x_payment: PaymentProofHeader = None,
) -> Any:
    """Rent or buy a piece of content.

    Without ``X-PAYMENT`` this returns a 402 challenge priced from the chain;
    with it, the transaction is verified and access is activated.
    """
    user = authenticate(credentials, identity_service)
    require_wallet(identity_service, user, payload.wallet_address)
    enforce_rate_limit(rate_limiter, user)
    if x_payment:
        validate_payment_proof(x_payment)
        cached = protocol.replay(SCOPE_CONTENT, user.user_id, payload.idempotency_key)
        if cached is not None:
            return cached

    action = PaymentAction(payload.action)
    metadata = await protocol.quote_content(payload.content_id, action)
    if not x_payment:
        return _payment_required(metadata)

    return await protocol.settle_content(
        proof=x_payment,
        user_id=user.user_id,
        payer=payload.wallet_address,
        content_id=payload.content_id,
        action=action,
        idempotency_key=payload.idempotency_key,
    )


@router.post(
    "/subscribe",
    responses={status.HTTP_402_PAYMENT_REQUIRED: {"model": PaymentMetadata}},
)
async def subscribe(
    payload: SubscriptionRequest,
    credentials: BearerDep,
    identity_service: IdentityServiceDep,
    rate_limiter: RateLimiterDep,
    protocol: ProtocolDep,
    x_payment: PaymentProofHeader = None,
) -> Any:
    """Subscribe to a creator through the CreatorHub contract."""
    user = authenticate(credentials, identity_service)
    require_wallet(identity_service, user, payload.wallet_address)
    enforce_rate_limit(rate_limiter, user)
    if x_payment:
        validate_payment_proof(x_payment)
        cached = protocol.replay(SCOPE_SUBSCRIBE, user.user_id, payload.idempotency_key)
        if cached is not None:
            return cached

    metadata = await protocol.quote_subscription(payload.creator_address)
    if not x_payment:
        return _payment_required(metadata)

    return await protocol.settle_subscription(
        proof=x_payment,
        user_id=user.user_id,
        payer=payload.wallet_address,
        creator=payload.creator_address,
        tier_id=payload.tier_id,
        idempotency_key=payload.idempotency_key,
    )


@router.post(
    "/transfer",
    responses={status.HTTP_402_PAYMENT_REQUIRED: {"model": PaymentMetadata}},
)
async def subscribe_by_transfer(
    payload: SubscriptionRequest,
    credentials: BearerDep,
    identity_service: IdentityServiceDep,
    rate_limiter: RateLimiterDep,
    protocol: ProtocolDep,
    x_payment: PaymentProofHeader = None,
) -> Any:
    """Subscribe by paying the creator's wallet directly in native currency."""
    user = authenticate(credentials, identity_service)
    require_wallet(identity_service, user, payload.wallet_address)
    enforce_rate_limit(rate_limiter, user)
    if x_payment:
        validate_payment_proof(x_payment)
        cached = protocol.replay(SCOPE_TRANSFER, user.user_id, payload.idempotency_key)
        if cached is not None:
            return cached

    metadata = await protocol.quote_direct_subscription(payload.creator_address)
    if not x_payment:
        return _payment_required(metadata, ACCEPT_NATIVE_TRANSFER)

    return await protocol.settle_direct_subscription(
        proof=x_payment,
        user_id=user.user_id,
        payer=payload.wallet_address,
        metadata=metadata,
        tier_id=payload.tier_id,
        idempotency_key=payload.idempotency_key,
    )
