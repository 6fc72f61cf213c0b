"""Tests for x402 quoting and settlement."""

import pytest

from creatorhub.core.errors import ClientInputError, PaymentInvalidError
from creatorhub.core.settings import settings
from creatorhub.services.contract import CHECK_RENTAL, CONTENTS, PaymentAction, encode_payment_call
from creatorhub.services.idempotency import InMemoryIdempotencyStore
from creatorhub.services.protocol import SCOPE_CONTENT, X402Protocol, challenge_headers
from creatorhub.services.verifier import PaymentVerifier
from tests.fakes import HUB, PAYER, TX_HASH, content_record


class StepClock:
    def __init__(self) -> None:
        self.now = 0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def protocol(chain, hub, idempotency_store) -> X402Protocol:
    return X402Protocol(
        hub=hub,
        verifier=PaymentVerifier(chain, hub),
        idempotency=idempotency_store,
        config=settings,
    )


@pytest.fixture()
def paid_rental(chain):
    chain.set_view(HUB, CONTENTS, (42,), content_record())
    chain.add_transaction(TX_HASH, sender=PAYER, to=HUB, data=encode_payment_call(PaymentAction.RENT, 42))
    chain.set_view(HUB, CHECK_RENTAL, (PAYER, 42), (True,))


async def _settle(protocol, user_id="alice", key="k"):
    return await protocol.settle_content(
        proof=TX_HASH,
        user_id=user_id,
        payer=PAYER,
        content_id="42",
        action=PaymentAction.RENT,
        idempotency_key=key,
    )


@pytest.mark.asyncio
async def test_quote_content(protocol, chain) -> None:
    chain.set_view(HUB, CONTENTS, (42,), content_record())

    metadata = await protocol.quote_content("42", PaymentAction.RENT)

    assert metadata.amount_base_units == 2_000_000
    assert not metadata.is_native
    headers = challenge_headers(metadata)
    assert headers["X-Payment-Recipient"] == HUB
    assert headers["X-Payment-Chain-Id"] == str(settings.chain_id)
    assert headers["X-Payment-Required"] == f"2000000 BASE_UNITS on chain {settings.chain_id}"
    labelled = challenge_headers(metadata, token_symbol="usdc")
    assert labelled["X-Payment-Required"] == f"2000000 USDC_BASE_UNITS on chain {settings.chain_id}"


@pytest.mark.asyncio
@pytest.mark.usefixtures("paid_rental")
async def test_settlement_is_cached_per_user(protocol, idempotency_store) -> None:
    result = await _settle(protocol)

    assert protocol.replay(SCOPE_CONTENT, "alice", "k") == result
    assert protocol.replay(SCOPE_CONTENT, "bob", "k") is None
    assert idempotency_store.get("content:alice:k") == result


@pytest.mark.asyncio
@pytest.mark.usefixtures("paid_rental")
async def test_settlement_without_key_is_not_cached(protocol, idempotency_store) -> None:
    await _settle(protocol, key=None)

    assert len(idempotency_store) == 0
    assert protocol.replay(SCOPE_CONTENT, "alice", None) is None


@pytest.mark.asyncio
@pytest.mark.usefixtures("paid_rental")
async def test_cached_result_short_circuits_verification(protocol, chain) -> None:
    first = await _settle(protocol)
    calls = chain.total_calls

    second = await _settle(protocol)

    assert second is first
    assert chain.total_calls == calls


@pytest.mark.asyncio
@pytest.mark.usefixtures("paid_rental")
async def test_expired_key_is_verified_on_chain_again(chain, hub) -> None:
    clock = StepClock()
    protocol = X402Protocol(
        hub=hub,
        verifier=PaymentVerifier(chain, hub),
        idempotency=InMemoryIdempotencyStore(60, clock=clock),
        config=settings,
    )
    await _settle(protocol)
    calls = chain.total_calls

    clock.now = 59
    await _settle(protocol)
    assert chain.total_calls == calls

    clock.now = 60
    await _settle(protocol)
    assert chain.total_calls > calls


@pytest.mark.asyncio
async def test_unmined_payment_carries_retry_after(protocol) -> None:
    with pytest.raises(PaymentInvalidError) as excinfo:
        await _settle(protocol)

    assert excinfo.value.headers == {"Retry-After": "5"}


@pytest.mark.asyncio
async def test_malformed_proof_is_client_error(protocol) -> None:
    with pytest.raises(ClientInputError):
        await protocol.settle_content(
            proof="0xabc",
            user_id="alice",
            payer=PAYER,
            content_id="42",
            action=PaymentAction.RENT,
            idempotency_key="k",
        )
