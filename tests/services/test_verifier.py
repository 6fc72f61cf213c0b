"""Tests for on-chain payment verification."""

import pytest

from creatorhub.services.chain import ChainError, ChainErrorKind
from creatorhub.services.contract import CHECK_RENTAL, PaymentAction, encode_payment_call
from creatorhub.services.verifier import (
    ACCESS_NOT_ACTIVATED,
    ACCESS_STATE_UNAVAILABLE,
    CALL_DATA_MISMATCH,
    INSUFFICIENT_AMOUNT,
    RECIPIENT_MISMATCH,
    SENDER_MISMATCH,
    TX_FAILED,
    TX_NOT_FOUND,
    PaymentVerifier,
    VerificationStage,
)
from tests.fakes import CREATOR, HUB, OTHER, PAYER, TX_HASH

RENT_42 = encode_payment_call(PaymentAction.RENT, 42)


@pytest.fixture()
def verifier(chain, hub) -> PaymentVerifier:
    return PaymentVerifier(chain, hub)


async def _verify_rent(verifier, **kwargs):
    params = {"tx_hash": TX_HASH, "payer": PAYER, "action": PaymentAction.RENT, "target": 42}
    params.update(kwargs)
    return await verifier.verify_contract_call(**params)


@pytest.mark.asyncio
async def test_matching_rent_call_is_valid(chain, verifier) -> None:
    chain.add_transaction(TX_HASH, sender=PAYER.upper(), to=HUB.upper(), data=RENT_42)
    chain.set_view(HUB, CHECK_RENTAL, (PAYER, 42), (True,))

    result = await _verify_rent(verifier)

    assert result.valid
    assert result.error is None


@pytest.mark.asyncio
async def test_missing_transaction_is_retryable(verifier) -> None:
    result = await _verify_rent(verifier)

    assert not result.valid
    assert result.stage is VerificationStage.LOOKUP
    assert result.error == TX_NOT_FOUND
    assert result.retryable


@pytest.mark.asyncio
async def test_pending_transaction_without_receipt_is_retryable(chain, verifier) -> None:
    chain.add_transaction(TX_HASH, sender=PAYER, to=HUB, data=RENT_42, mined=False)

    result = await _verify_rent(verifier)

    assert result.error == TX_NOT_FOUND
    assert result.retryable


@pytest.mark.asyncio
async def test_failed_receipt_is_final(chain, verifier) -> None:
    chain.add_transaction(TX_HASH, sender=PAYER, to=HUB, data=RENT_42)
    chain.fail_receipt(TX_HASH)

    result = await _verify_rent(verifier)

    assert result.error == TX_FAILED
    assert not result.retryable


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("tx", "error", "stage"),
    [
        ({"sender": OTHER, "to": HUB, "data": RENT_42}, SENDER_MISMATCH, VerificationStage.SENDER),
        ({"sender": PAYER, "to": OTHER, "data": RENT_42}, RECIPIENT_MISMATCH, VerificationStage.RECIPIENT),
        ({"sender": PAYER, "to": None, "data": RENT_42}, RECIPIENT_MISMATCH, VerificationStage.RECIPIENT),
        (
            {"sender": PAYER, "to": HUB, "data": encode_payment_call(PaymentAction.RENT, 43)},
            CALL_DATA_MISMATCH,
            VerificationStage.CALL_DATA,
        ),
        (
            {"sender": PAYER, "to": HUB, "data": encode_payment_call(PaymentAction.BUY, 42)},
            CALL_DATA_MISMATCH,
            VerificationStage.CALL_DATA,
        ),
    ],
)
async def test_mismatched_transaction_is_rejected(chain, verifier, tx, error, stage) -> None:
    chain.add_transaction(TX_HASH, **tx)
    chain.set_view(HUB, CHECK_RENTAL, (PAYER, 42), (True,))

    result = await _verify_rent(verifier)

    assert result.error == error
    assert result.stage is stage
    assert not result.retryable


@pytest.mark.asyncio
async def test_access_not_yet_visible_is_retryable(chain, verifier) -> None:
    chain.add_transaction(TX_HASH, sender=PAYER, to=HUB, data=RENT_42)

    result = await _verify_rent(verifier)

    assert result.error == ACCESS_NOT_ACTIVATED
    assert result.stage is VerificationStage.POSTCONDITION
    assert result.retryable


@pytest.mark.asyncio
async def test_unreadable_access_state_is_retryable(chain, verifier) -> None:
    chain.add_transaction(TX_HASH, sender=PAYER, to=HUB, data=RENT_42)
    chain.set_view(HUB, CHECK_RENTAL, (PAYER, 42), ChainError(ChainErrorKind.RPC_UNAVAILABLE, "down"))

    result = await _verify_rent(verifier)

    assert result.error == ACCESS_STATE_UNAVAILABLE
    assert result.retryable


@pytest.mark.asyncio
async def test_postcondition_can_be_skipped(chain, verifier) -> None:
    chain.add_transaction(TX_HASH, sender=PAYER, to=HUB, data=RENT_42)

    result = await _verify_rent(verifier, check_access=False)

    assert result.valid


@pytest.mark.asyncio
async def test_direct_transfer_checks_minimum_value(chain, verifier) -> None:
    chain.add_transaction(TX_HASH, sender=PAYER, to=CREATOR, value=999)

    short = await verifier.verify_direct_transfer(
        tx_hash=TX_HASH, payer=PAYER, recipient=CREATOR, min_amount=1000
    )
    exact = await verifier.verify_direct_transfer(
        tx_hash=TX_HASH, payer=PAYER, recipient=CREATOR, min_amount=999
    )

    assert short.error == INSUFFICIENT_AMOUNT
    assert short.stage is VerificationStage.AMOUNT
    assert exact.valid


@pytest.mark.asyncio
async def test_direct_transfer_runs_custom_postcondition(chain, verifier) -> None:
    chain.add_transaction(TX_HASH, sender=PAYER, to=CREATOR, value=1000)

    async def never() -> bool:
        return False

    result = await verifier.verify_direct_transfer(
        tx_hash=TX_HASH, payer=PAYER, recipient=CREATOR, min_amount=1000, postcondition=never
    )

    assert result.error == ACCESS_NOT_ACTIVATED
