"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from creatorhub.core.errors import RateLimitError, WalletOwnershipError
from creatorhub.core.settings import settings
from creatorhub.db.session import get_db
from creatorhub.services.access import AccessAuthorizer
from creatorhub.services.chain import ChainReader, get_chain_reader
from creatorhub.services.contract import CreatorHubReader
from creatorhub.services.fetch_instruction import FetchInstructionSigner
from creatorhub.services.identity import Identity, IdentityService
from creatorhub.services.idempotency import IdempotencyStore, get_idempotency_store
from creatorhub.services.protocol import X402Protocol
from creatorhub.services.rate_limit import RateLimiter, get_rate_limiter
from creatorhub.services.storage import StorageClient, get_storage_client
from creatorhub.services.verifier import PaymentVerifier

# Bearer credentials are optional at the dependency layer so request bodies are
# validated before authentication is enforced.
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]
BearerDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def get_identity_service(db: SessionDep) -> IdentityService:
    """Return an identity service bound to the request session."""
    return IdentityService(db)


def get_chain_reader_dep() -> ChainReader:
    """Return the shared chain reader."""
    return get_chain_reader()


ChainReaderDep = Annotated[ChainReader, Depends(get_chain_reader_dep)]


def get_creator_hub(chain: ChainReaderDep) -> CreatorHubReader:
    return CreatorHubReader(chain, settings.creator_hub_address)


CreatorHubDep = Annotated[CreatorHubReader, Depends(get_creator_hub)]


def get_payment_verifier(chain: ChainReaderDep, hub: CreatorHubDep) -> PaymentVerifier:
    return PaymentVerifier(chain, hub)


def get_idempotency_store_dep() -> IdempotencyStore:
    """Return the shared idempotency store."""
    return get_idempotency_store()


def get_rate_limiter_dep() -> RateLimiter:
    """Return the shared rate limiter."""
    return get_rate_limiter()


IdentityServiceDep = Annotated[IdentityService, Depends(get_identity_service)]
PaymentVerifierDep = Annotated[PaymentVerifier, Depends(get_payment_verifier)]
IdempotencyStoreDep = Annotated[IdempotencyStore, Depends(get_idempotency_store_dep)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter_dep)]


def get_protocol(
    hub: CreatorHubDep,
    verifier: PaymentVerifierDep,
    idempotency: IdempotencyStoreDep,
) -> X402Protocol:
    return X402Protocol(hub=hub, verifier=verifier, idempotency=idempotency, config=settings)


def get_access_authorizer(hub: CreatorHubDep) -> AccessAuthorizer:
    return AccessAuthorizer(hub)


def get_fetch_signer() -> FetchInstructionSigner | None:
    """Return a fetch-instruction signer, or None when no secret is configured."""
    if not settings.content_signing_secret:
        return None
    return FetchInstructionSigner(
        settings.content_signing_secret,
        ttl_seconds=settings.fetch_instruction_ttl_seconds,
    )


def get_storage_client_dep() -> StorageClient | None:
    return get_storage_client()


ProtocolDep = Annotated[X402Protocol, Depends(get_protocol)]
AccessAuthorizerDep = Annotated[AccessAuthorizer, Depends(get_access_authorizer)]
FetchSignerDep = Annotated[FetchInstructionSigner | None, Depends(get_fetch_signer)]
StorageClientDep = Annotated[StorageClient | None, Depends(get_storage_client_dep)]


def authenticate(credentials: HTTPAuthorizationCredentials | None, identity: IdentityService) -> Identity:
    """Resolve the bearer token to an identity.

    Raises:
        AuthError: If the token is missing or invalid.
    """
    token = credentials.credentials if credentials is not None else None
    return identity.authenticate(token)


def require_wallet(identity: IdentityService, user: Identity, wallet_address: str) -> None:
    """Ensure ``wallet_address`` is linked to ``user``.

    Raises:
        WalletOwnershipError: If the wallet belongs to someone else or no one.
    """
    if not identity.owns_wallet(user.user_id, wallet_address):
        raise WalletOwnershipError()


def enforce_rate_limit(limiter: RateLimiter, user: Identity) -> None:
    """Count a request against ``user``'s window.

    Raises:
        RateLimitError: If the window's budget is exhausted.
    """
    decision = limiter.hit(user.user_id)
    if not decision.allowed:
        raise RateLimitError(decision.retry_after)
