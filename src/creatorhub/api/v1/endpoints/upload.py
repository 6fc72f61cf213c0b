"""Creator upload endpoints for the CreatorHub API."""

import logging
from typing import Annotated

from fastapi import APIRouter, File, Query, UploadFile, status

from creatorhub.core.errors import (
    AccessDeniedError,
    ChainUnavailableError,
    ClientInputError,
    GatewayError,
    ServiceConfigError,
)
from creatorhub.core.settings import settings
from creatorhub.services.chain import ChainError
from creatorhub.services.storage import StorageError
from creatorhub.utils.validation import is_valid_wallet_address

from ..dependencies import (
    BearerDep,
    CreatorHubDep,
    IdentityServiceDep,
    StorageClientDep,
    authenticate,
    require_wallet,
)

router = APIRouter(prefix="/upload", tags=["upload"])
logger = logging.getLogger(__name__)


class UploadFailedError(GatewayError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Upload failed"


@router.get("/key")
async def get_upload_key(
    credentials: BearerDep,
    identity_service: IdentityServiceDep,
    hub: CreatorHubDep,
    wallet_address: Annotated[str | None, Query(alias="walletAddress")] = None,
) -> dict[str, str]:
    """Hand the storage API key to a registered creator."""
    user = authenticate(credentials, identity_service)

    if not settings.storage_api_key:
        raise ServiceConfigError("Upload service not configured")
    if not wallet_address or not is_valid_wallet_address(wallet_address):
        raise ClientInputError("Invalid wallet address")

    require_wallet(identity_service, user, wallet_address)

    try:
        creator = await hub.get_creator(wallet_address)
    except ChainError as exc:
        logger.error("Creator lookup for %s failed: %s", wallet_address, exc.message)
        raise ChainUnavailableError("Failed to verify creator access") from exc

    if not creator.is_registered:
        raise AccessDeniedError("Creator access required")

    return {"apiKey": settings.storage_api_key}


@router.post("")
async def upload_file(
    credentials: BearerDep,
    identity_service: IdentityServiceDep,
    storage: StorageClientDep,
    file: Annotated[UploadFile | None, File()] = None,
) -> dict[str, str]:
    """Upload a file to the storage provider and return its CID."""
    authenticate(credentials, identity_service)

    if storage is None:
        raise ServiceConfigError("Upload service not configured")
    if file is None:
        raise ClientInputError("No file provided")

    content = await file.read()
    try:
        cid = await storage.upload(file.filename or "upload", content, file.content_type)
    except StorageError as exc:
        raise UploadFailedError(details=str(exc)) from exc

    return {"cid": cid}
