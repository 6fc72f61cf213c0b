"""Tests for the two-round x402 client."""

import json

import httpx
import pytest

from creatorhub.client.executor import PaymentExecutor
from creatorhub.client.proof_cache import LocalProofCache
from creatorhub.client.x402 import PAYMENT_HEADER, X402Client, X402ClientError
from tests.fakes import CREATOR, HUB, PAYER, TOKEN, TX_HASH

CHALLENGE = {
    "chainId": 84532,
    "tokenAddress": TOKEN,
    "amount": "2000000",
    "recipient": HUB,
    "paymentParameter": {"contentId": "42", "purchaseType": "rent", "action": "rent"},
}


class FakeGateway:
    """Answers the challenge round, then plays back scripted settle responses."""

    def __init__(self, settle_responses: list[httpx.Response]) -> None:
        self.settle_responses = list(settle_responses)
        self.requests: list[tuple[dict, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((dict(request.headers), body))
        if PAYMENT_HEADER.lower() not in request.headers:
            return httpx.Response(402, json=CHALLENGE)
        return self.settle_responses.pop(0)


@pytest.fixture()
def executor(mocker):
    executor = mocker.Mock(spec=PaymentExecutor)
    executor.execute = mocker.AsyncMock(return_value=TX_HASH)
    return executor


@pytest.fixture()
def sleeps():
    return []


def _client(gateway, executor, sleeps, **kwargs) -> X402Client:
    async def sleep(seconds: float) -> None:
        sleeps.append(seconds)

    http = httpx.AsyncClient(transport=httpx.MockTransport(gateway), base_url="http://gateway")
    return X402Client(
        "http://gateway",
        "token-123",
        executor,
        wallet_address=PAYER,
        http_client=http,
        sleep=sleep,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_rent_pays_challenge_and_settles(executor, sleeps) -> None:
    activated = {"status": "activated", "action": "rent", "contentId": "42", "transactionHash": TX_HASH}
    gateway = FakeGateway([httpx.Response(200, json=activated)])
    client = _client(gateway, executor, sleeps)

    result = await client.rent("42")

    assert result == activated
    metadata = executor.execute.await_args.args[0]
    assert metadata.amount == "2000000"
    (challenge_headers, challenge_body), (settle_headers, settle_body) = gateway.requests
    assert challenge_headers["authorization"] == "Bearer token-123"
    assert settle_headers["x-payment"] == TX_HASH
    assert challenge_body["walletAddress"] == PAYER
    assert settle_body == challenge_body
    assert sleeps == []


@pytest.mark.asyncio
async def test_unconfirmed_payment_is_retried_with_same_key(executor, sleeps) -> None:
    pending = httpx.Response(400, json={"error": "Payment verification failed"}, headers={"Retry-After": "5"})
    gateway = FakeGateway([pending, httpx.Response(200, json={"status": "activated"})])
    client = _client(gateway, executor, sleeps, retry_delay=1.0)

    result = await client.buy("42")

    assert result == {"status": "activated"}
    keys = {body["idempotencyKey"] for _, body in gateway.requests}
    assert len(keys) == 1
    assert sleeps == [5.0]


@pytest.mark.asyncio
async def test_retries_stop_after_attempt_budget(executor, sleeps) -> None:
    def pending() -> httpx.Response:
        return httpx.Response(400, json={"error": "Payment verification failed"}, headers={"Retry-After": "5"})

    gateway = FakeGateway([pending(), pending()])
    client = _client(gateway, executor, sleeps, settle_attempts=2)

    with pytest.raises(X402ClientError) as excinfo:
        await client.rent("42")

    assert excinfo.value.status_code == 400
    assert len(sleeps) == 1


@pytest.mark.asyncio
async def test_final_rejection_is_not_retried(executor, sleeps) -> None:
    gateway = FakeGateway([httpx.Response(400, json={"error": "Payment verification failed"})])
    client = _client(gateway, executor, sleeps)

    with pytest.raises(X402ClientError):
        await client.rent("42")

    assert sleeps == []


@pytest.mark.asyncio
async def test_non_challenge_response_is_raised(executor, sleeps) -> None:
    def gateway(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": "walletAddress does not belong to authenticated user"})

    client = _client(gateway, executor, sleeps)

    with pytest.raises(X402ClientError) as excinfo:
        await client.subscribe(CREATOR, tier_id=2)

    assert excinfo.value.status_code == 403
    executor.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_settled_payments_are_cached_locally(executor, sleeps, tmp_path) -> None:
    cache = LocalProofCache(tmp_path / "proofs.json")
    gateway = FakeGateway([httpx.Response(200, json={"status": "activated"}) for _ in range(2)])
    client = _client(gateway, executor, sleeps, proof_cache=cache)

    await client.rent("42")
    await client.subscribe(CREATOR)

    assert cache.rental_proof(PAYER, "42") == TX_HASH
    assert cache.subscription_proof(PAYER, CREATOR.upper().replace("0X", "0x")) == TX_HASH


@pytest.mark.asyncio
async def test_purchase_is_cached_apart_from_rentals(executor, sleeps, tmp_path) -> None:
    cache = LocalProofCache(tmp_path / "proofs.json")
    gateway = FakeGateway([httpx.Response(200, json={"status": "activated"})])
    client = _client(gateway, executor, sleeps, proof_cache=cache)

    await client.buy("42")

    assert cache.purchase_proof(PAYER, "42") == TX_HASH
    assert cache.rental_proof(PAYER, "42") is None


@pytest.mark.asyncio
async def test_settle_directly_with_known_hash(executor, sleeps) -> None:
    gateway = FakeGateway([httpx.Response(200, json={"status": "activated"})])
    client = _client(gateway, executor, sleeps)

    await client.settle("/api/v1/x402/subscribe", {"creatorAddress": CREATOR, "tierId": 0}, TX_HASH)

    headers, body = gateway.requests[0]
    assert headers["x-payment"] == TX_HASH
    assert body["walletAddress"] == PAYER
    assert body["idempotencyKey"]
    executor.execute.assert_not_awaited()
