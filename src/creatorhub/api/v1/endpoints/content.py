"""Content authorization endpoints for the CreatorHub API."""

import logging
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from creatorhub.core.errors import ClientInputError, ServiceConfigError
from creatorhub.core.settings import settings
from creatorhub.schemas.payment import AuthorizeRequest, FetchInstructionPayload
from creatorhub.services.fetch_instruction import FetchInstruction
from creatorhub.utils.validation import is_valid_content_id

from ..dependencies import (
    AccessAuthorizerDep,
    BearerDep,
    FetchSignerDep,
    IdentityServiceDep,
    authenticate,
    require_wallet,
)

router = APIRouter(prefix="/content", tags=["content"])
logger = logging.getLogger(__name__)


@router.post("/{content_id}/authorize")
async def authorize_content(
    content_id: str,
    payload: AuthorizeRequest,
    credentials: BearerDep,
    identity_service: IdentityServiceDep,
    authorizer: AccessAuthorizerDep,
    signer: FetchSignerDep,
) -> Any:
    """Decide access from on-chain state and issue a signed fetch instruction."""
    if not is_valid_content_id(content_id):
        raise ClientInputError("Invalid content ID format")

    user = authenticate(credentials, identity_service)

    if signer is None:
        logger.error("CONTENT_SIGNING_SECRET is not configured")
        if settings.is_production:
            raise ServiceConfigError()
        raise ServiceConfigError("Signing secret not configured")

    require_wallet(identity_service, user, payload.wallet_address)

    grant = await authorizer.authorize(
        payload.wallet_address,
        content_id,
        payload.creator_address,
    )
    if not grant.has_access:
        logger.info("Denied %s access to content %s", payload.wallet_address, content_id)
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"authorized": False, "error": "Access denied", "reason": grant.message},
        )

    instruction = signer.issue(content_id, payload.wallet_address)
    logger.info(
        "Authorized %s for content %s (%s)",
        payload.wallet_address,
        content_id,
        grant.reason.value,
    )
    body: dict[str, Any] = {
        "authorized": True,
        "fetchInstruction": instruction.to_dict(),
        "accessReason": grant.message,
    }
    if grant.expires_at is not None:
        body["accessExpiresAt"] = grant.expires_at
    return body


@router.post("/fetch-instruction/verify")
async def verify_fetch_instruction(
    payload: FetchInstructionPayload,
    signer: FetchSignerDep,
) -> dict[str, Any]:
    """Check a fetch instruction's signature and expiry."""
    if signer is None:
        raise ServiceConfigError()

    instruction = FetchInstruction.from_dict(payload.model_dump(by_alias=True))
    verification = signer.verify(instruction)
    if not verification.valid:
        return {"valid": False, "reason": verification.reason}
    return {"valid": True}
