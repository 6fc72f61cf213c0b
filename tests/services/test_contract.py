"""Tests for CreatorHub ABI encoding."""

import pytest
from eth_abi import encode

from creatorhub.services.contract import (
    BUY_CONTENT,
    ERC20_TRANSFER,
    RENT_CONTENT,
    RENTALS,
    SUBSCRIBE,
    ContentRecord,
    CreatorRecord,
    PaymentAction,
    encode_payment_call,
)
from tests.fakes import CREATOR, PAYER, TOKEN, content_record, creator_record


def test_known_selectors() -> None:
    assert ERC20_TRANSFER.selector.hex() == "a9059cbb"
    assert RENT_CONTENT.signature == "rentContent(uint256)"
    assert SUBSCRIBE.signature == "subscribe(address)"


def test_payment_call_layout() -> None:
    data = encode_payment_call(PaymentAction.BUY, 42)

    assert data.startswith("0x" + BUY_CONTENT.selector.hex())
    assert len(data) == 2 + 8 + 64
    assert data.endswith(f"{42:064x}")


def test_subscribe_call_is_case_insensitive_in_creator() -> None:
    lower = encode_payment_call(PaymentAction.SUBSCRIBE, CREATOR)
    upper = encode_payment_call(PaymentAction.SUBSCRIBE, "0x" + CREATOR[2:].upper())

    assert lower == upper
    assert lower.endswith(CREATOR[2:].rjust(64, "0"))


def test_rent_and_buy_differ() -> None:
    assert encode_payment_call(PaymentAction.RENT, 1) != encode_payment_call(PaymentAction.BUY, 1)


def test_wrong_argument_count_is_rejected() -> None:
    with pytest.raises(ValueError):
        RENT_CONTENT.encode_call(1, 2)


def test_decode_output() -> None:
    raw = "0x" + encode(["uint256"], [7]).hex()

    assert RENTALS.decode_output(raw) == (7,)


def test_content_record_prices() -> None:
    record = ContentRecord.from_output(content_record(full_price=5, rented_price=2))

    assert record.price_for(PaymentAction.RENT) == 2
    assert record.price_for(PaymentAction.BUY) == 5
    assert record.payment_token == TOKEN
    with pytest.raises(ValueError):
        record.price_for(PaymentAction.SUBSCRIBE)


def test_creator_record() -> None:
    record = CreatorRecord.from_output(creator_record(wallet=PAYER, price=9))

    assert record.is_registered
    assert record.subscription_price == 9
    assert record.wallet == PAYER
