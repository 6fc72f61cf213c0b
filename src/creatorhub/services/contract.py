"""CreatorHub and ERC-20 ABI definitions.

Call data is built with ``eth_abi`` and 4-byte selectors derived from the
function signature. The payment verifier compares transaction input against
these encodings byte for byte, so any change to a signature here must bump
``CREATOR_HUB_ABI_VERSION``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from eth_abi import decode, encode
from eth_utils import keccak, to_checksum_address

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from creatorhub.services.chain import ChainReader

CREATOR_HUB_ABI_VERSION = "creatorhub-v1"


class PaymentAction(str, Enum):
    """Payable actions exposed by the CreatorHub contract."""

    RENT = "rent"
    BUY = "buy"
    SUBSCRIBE = "subscribe"


@dataclass(frozen=True)
class ContractFunction:
    """A single contract function with static input and output types."""

    name: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return keccak(text=self.signature)[:4]

    def encode_call(self, *args: Any) -> str:
        """Return 0x-prefixed call data for ``args``."""
        if len(args) != len(self.inputs):
            raise ValueError(f"{self.signature} expects {len(self.inputs)} arguments, got {len(args)}")
        normalized = [_normalize_arg(kind, value) for kind, value in zip(self.inputs, args)]
        return "0x" + (self.selector + encode(list(self.inputs), normalized)).hex()

    def decode_output(self, data: str) -> tuple[Any, ...]:
        raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
        return tuple(decode(list(self.outputs), raw))


def _normalize_arg(kind: str, value: Any) -> Any:
    if kind == "address":
        return to_checksum_address(value)
    if kind.startswith("uint") or kind.startswith("int"):
        return int(value)
    return value


# CreatorHub payment entry points
RENT_CONTENT = ContractFunction("rentContent", ("uint256",))
BUY_CONTENT = ContractFunction("buyContent", ("uint256",))
SUBSCRIBE = ContractFunction("subscribe", ("address",))

# CreatorHub access predicates and state reads
CHECK_RENTAL = ContractFunction("checkRental", ("address", "uint256"), ("bool",))
CHECK_PURCHASE = ContractFunction("checkPurchase", ("address", "uint256"), ("bool",))
CHECK_SUBSCRIPTION = ContractFunction("checkSubscription", ("address", "address"), ("bool",))
RENTALS = ContractFunction("rentals", ("address", "uint256"), ("uint256",))
SUBSCRIPTIONS = ContractFunction("subscriptions", ("address", "address"), ("uint256",))
CONTENTS = ContractFunction(
    "contents",
    ("uint256",),
    ("uint256", "address", "uint8", "string", "bool", "uint256", "uint256", "address", "bool"),
)
CREATORS = ContractFunction("creators", ("address",), ("string", "address", "bool", "uint256"))

# ERC-20
ERC20_TRANSFER = ContractFunction("transfer", ("address", "uint256"), ("bool",))
ERC20_APPROVE = ContractFunction("approve", ("address", "uint256"), ("bool",))
ERC20_BALANCE_OF = ContractFunction("balanceOf", ("address",), ("uint256",))
ERC20_ALLOWANCE = ContractFunction("allowance", ("address", "address"), ("uint256",))

PAYMENT_FUNCTIONS: dict[PaymentAction, ContractFunction] = {
    PaymentAction.RENT: RENT_CONTENT,
    PaymentAction.BUY: BUY_CONTENT,
    PaymentAction.SUBSCRIBE: SUBSCRIBE,
}

ACCESS_PREDICATES: dict[PaymentAction, ContractFunction] = {
    PaymentAction.RENT: CHECK_RENTAL,
    PaymentAction.BUY: CHECK_PURCHASE,
    PaymentAction.SUBSCRIBE: CHECK_SUBSCRIPTION,
}


@dataclass(frozen=True)
class ContentRecord:
    """Decoded ``contents(uint256)`` struct."""

    content_id: int
    creator: str
    content_type: int
    metadata_uri: str
    is_free: bool
    full_price: int
    rented_price: int
    payment_token: str
    active: bool

    @classmethod
    def from_output(cls, output: tuple[Any, ...]) -> ContentRecord:
        (content_id, creator, content_type, metadata_uri, is_free,
         full_price, rented_price, payment_token, active) = output
        return cls(
            content_id=int(content_id),
            creator=str(creator),
            content_type=int(content_type),
            metadata_uri=str(metadata_uri),
            is_free=bool(is_free),
            full_price=int(full_price),
            rented_price=int(rented_price),
            payment_token=str(payment_token),
            active=bool(active),
        )

    def price_for(self, action: PaymentAction) -> int:
        if action is PaymentAction.RENT:
            return self.rented_price
        if action is PaymentAction.BUY:
            return self.full_price
        raise ValueError(f"Content has no price for action {action.value}")


@dataclass(frozen=True)
class CreatorRecord:
    """Decoded ``creators(address)`` struct."""

    channel_name: str
    wallet: str
    is_registered: bool
    subscription_price: int

    @classmethod
    def from_output(cls, output: tuple[Any, ...]) -> CreatorRecord:
        channel_name, wallet, is_registered, subscription_price = output[:4]
        return cls(
            channel_name=str(channel_name),
            wallet=str(wallet),
            is_registered=bool(is_registered),
            subscription_price=int(subscription_price),
        )


def encode_payment_call(action: PaymentAction, target: int | str) -> str:
    """Encode the CreatorHub call that pays for ``action`` on ``target``.

    ``target`` is the numeric content id for rent/buy and the creator address
    for subscribe.
    """
    function = PAYMENT_FUNCTIONS[action]
    if action is PaymentAction.SUBSCRIBE:
        return function.encode_call(str(target))
    return function.encode_call(int(target))


class CreatorHubReader:
    """Typed read access to the CreatorHub contract."""

    def __init__(self, chain: ChainReader, address: str) -> None:
        self._chain = chain
        self.address = address

    async def get_content(self, content_id: int) -> ContentRecord:
        output = await self._chain.call_function(self.address, CONTENTS, content_id)
        return ContentRecord.from_output(output)

    async def get_creator(self, creator: str) -> CreatorRecord:
        output = await self._chain.call_function(self.address, CREATORS, creator)
        return CreatorRecord.from_output(output)

    async def check_rental(self, user: str, content_id: int) -> bool:
        (active,) = await self._chain.call_function(self.address, CHECK_RENTAL, user, content_id)
        return bool(active)

    async def check_purchase(self, user: str, content_id: int) -> bool:
        (owned,) = await self._chain.call_function(self.address, CHECK_PURCHASE, user, content_id)
        return bool(owned)

    async def check_subscription(self, user: str, creator: str) -> bool:
        (active,) = await self._chain.call_function(
            self.address, CHECK_SUBSCRIPTION, user, creator
        )
        return bool(active)

    async def rental_expiry(self, user: str, content_id: int) -> int:
        (expiry,) = await self._chain.call_function(self.address, RENTALS, user, content_id)
        return int(expiry)

    async def subscription_expiry(self, user: str, creator: str) -> int:
        (expiry,) = await self._chain.call_function(self.address, SUBSCRIPTIONS, user, creator)
        return int(expiry)

    async def has_access_for(self, action: PaymentAction, user: str, target: int | str) -> bool:
        """Evaluate the access predicate that ``action`` is meant to flip."""
        if action is PaymentAction.RENT:
            return await self.check_rental(user, int(target))
        if action is PaymentAction.BUY:
            return await self.check_purchase(user, int(target))
        return await self.check_subscription(user, str(target))
