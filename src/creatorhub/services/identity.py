"""Bearer identity verification and wallet ownership."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from creatorhub.core.errors import AuthError
from creatorhub.core.settings import settings
from creatorhub.models import LinkedWallet
from creatorhub.utils.validation import normalize_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    claims: dict[str, Any] = field(default_factory=dict)


def create_access_token(user_id: str, expires_minutes: int | None = None) -> str:
    """Issue a bearer token for ``user_id`` signed with the gateway secret."""
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    claims: dict[str, Any] = {
        "sub": user_id,
        "exp": datetime.now(UTC) + timedelta(minutes=minutes),
    }
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


class IdentityService:
    """Resolve bearer tokens to identities and check linked wallets."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def authenticate(self, token: str | None) -> Identity:
        """Validate ``token`` and return the identity it names.

        Raises:
            AuthError: If the token is missing, malformed, expired or has no subject.
        """
        if not token:
            raise AuthError(details="Missing bearer token")
        try:
            options = {"verify_aud": settings.jwt_audience is not None}
            claims = jwt.decode(
                token,
                settings.secret_key,
                algorithms=[settings.jwt_algorithm],
                audience=settings.jwt_audience,
                options=options,
            )
        except JWTError as exc:
            logger.info("Rejected bearer token: %s", exc)
            raise AuthError(details="Invalid or expired token") from exc

        subject = claims.get("sub")
        if not subject:
            raise AuthError(details="Token has no subject")
        return Identity(user_id=str(subject), claims=claims)

    def owns_wallet(self, user_id: str, address: str) -> bool:
        return (
            self.db.query(LinkedWallet)
            .filter(
                LinkedWallet.user_id == user_id,
                LinkedWallet.address == normalize_address(address),
            )
            .first()
            is not None
        )

    def link_wallet(self, user_id: str, address: str) -> LinkedWallet:
        """Record that ``user_id`` controls ``address``; idempotent."""
        existing = (
            self.db.query(LinkedWallet)
            .filter(
                LinkedWallet.user_id == user_id,
                LinkedWallet.address == normalize_address(address),
            )
            .first()
        )
        if existing is not None:
            return existing
        wallet = LinkedWallet(user_id=user_id, address=address)
        self.db.add(wallet)
        self.db.commit()
        self.db.refresh(wallet)
        logger.info("Linked wallet %s to user %s", wallet.address, user_id)
        return wallet

    def wallets_for(self, user_id: str) -> list[str]:
        rows = self.db.query(LinkedWallet).filter(LinkedWallet.user_id == user_id).all()
        return [row.address for row in rows]
