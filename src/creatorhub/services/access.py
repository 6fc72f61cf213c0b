"""Content access decisions backed by CreatorHub state."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum

from creatorhub.core.errors import ChainUnavailableError
from creatorhub.core.settings import ZERO_ADDRESS
from creatorhub.services.chain import ChainError
from creatorhub.services.contract import CreatorHubReader
from creatorhub.utils.validation import addresses_equal, is_numeric_content_id

logger = logging.getLogger(__name__)


class AccessReason(str, Enum):
    OWNER = "owner"
    FREE = "free"
    RENTAL = "rental"
    PURCHASE = "purchase"
    SUBSCRIPTION = "subscription"
    LOCAL_PROOF = "local_proof"
    DENIED = "denied"


REASON_MESSAGES: dict[AccessReason, str] = {
    AccessReason.OWNER: "Content owner",
    AccessReason.FREE: "Free content",
    AccessReason.RENTAL: "Active Rental",
    AccessReason.PURCHASE: "Purchased",
    AccessReason.SUBSCRIPTION: "Active Subscription",
    AccessReason.LOCAL_PROOF: "Local payment proof",
    AccessReason.DENIED: "Payment required",
}


@dataclass(frozen=True)
class AccessGrant:
    has_access: bool
    reason: AccessReason
    # Epoch seconds at which a rental or subscription lapses, when known
    expires_at: int | None = None

    @property
    def message(self) -> str:
        return REASON_MESSAGES[self.reason]

    @classmethod
    def granted(cls, reason: AccessReason, expires_at: int | None = None) -> AccessGrant:
        return cls(has_access=True, reason=reason, expires_at=expires_at)

    @classmethod
    def denied(cls) -> AccessGrant:
        return cls(has_access=False, reason=AccessReason.DENIED)


class AccessAuthorizer:
    """Decide whether a wallet may read a piece of content.

    Numeric content ids refer to CreatorHub records and are decided from the
    on-chain record alone: a creator supplied by the caller is never trusted
    for them. Other ids are legacy blob identifiers that only carry
    subscription semantics.
    """

    def __init__(self, hub: CreatorHubReader) -> None:
        self._hub = hub

    async def authorize(
        self,
        requester: str,
        content_id: str,
        creator: str | None = None,
    ) -> AccessGrant:
        """Return the strongest grant ``requester`` holds for ``content_id``.

        Raises:
            ChainUnavailableError: If the record of a numeric id cannot be read.
        """
        if is_numeric_content_id(content_id):
            return await self._authorize_onchain(requester, int(content_id), creator)
        if creator is None:
            return AccessGrant.denied()
        return await self._first_held(
            requester,
            [(AccessReason.SUBSCRIPTION, self._hub.check_subscription(requester, creator))],
            creator=creator,
        )

    async def _authorize_onchain(
        self,
        requester: str,
        content_id: int,
        claimed_creator: str | None,
    ) -> AccessGrant:
        try:
            content = await self._hub.get_content(content_id)
        except ChainError as exc:
            logger.error("Could not read content %s: %s", content_id, exc.message)
            raise ChainUnavailableError(details="Failed to read content record") from exc

        if addresses_equal(content.creator, ZERO_ADDRESS):
            logger.info("Content %s has no on-chain record", content_id)
            return AccessGrant.denied()
        if claimed_creator is not None and not addresses_equal(claimed_creator, content.creator):
            logger.info(
                "Ignoring claimed creator %s for content %s; chain says %s",
                claimed_creator,
                content_id,
                content.creator,
            )

        if addresses_equal(requester, content.creator):
            return AccessGrant.granted(AccessReason.OWNER)
        if content.is_free:
            return AccessGrant.granted(AccessReason.FREE)

        checks: list[tuple[AccessReason, Awaitable[bool]]] = [
            (AccessReason.RENTAL, self._hub.check_rental(requester, content_id)),
            (AccessReason.PURCHASE, self._hub.check_purchase(requester, content_id)),
            (AccessReason.SUBSCRIPTION, self._hub.check_subscription(requester, content.creator)),
        ]
        return await self._first_held(
            requester, checks, content_id=content_id, creator=content.creator
        )

    async def _first_held(
        self,
        requester: str,
        checks: list[tuple[AccessReason, Awaitable[bool]]],
        *,
        content_id: int | None = None,
        creator: str | None = None,
    ) -> AccessGrant:
        outcomes = await asyncio.gather(
            *(self._guarded(reason, check) for reason, check in checks)
        )
        for (reason, _), held in zip(checks, outcomes):
            if not held:
                continue
            if reason is AccessReason.RENTAL and content_id is not None:
                expiry = self._hub.rental_expiry(requester, content_id)
            elif reason is AccessReason.SUBSCRIPTION and creator is not None:
                expiry = self._hub.subscription_expiry(requester, creator)
            else:
                return AccessGrant.granted(reason)
            return AccessGrant.granted(reason, await self._expiry(reason, expiry))
        return AccessGrant.denied()

    async def _guarded(self, reason: AccessReason, check: Awaitable[bool]) -> bool:
        try:
            return await check
        except ChainError as exc:
            logger.warning("Access check %s failed: %s", reason.value, exc.message)
            return False

    async def _expiry(self, reason: AccessReason, read: Awaitable[int]) -> int | None:
        try:
            expiry = await read
        except ChainError as exc:
            logger.warning("Expiry read for %s failed: %s", reason.value, exc.message)
            return None
        return expiry or None
