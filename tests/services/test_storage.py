"""Tests for the storage provider client."""

import httpx
import pytest

from creatorhub.services.storage import StorageClient, StorageError


def _storage(handler) -> StorageClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StorageClient("key-123", "https://storage.test/add", http_client=client)


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"Hash": "QmOne"}, {"data": {"Hash": "QmOne"}}])
async def test_upload_returns_cid(body) -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["content"] = request.content
        return httpx.Response(200, json=body)

    cid = await _storage(handler).upload("a.txt", b"hello", "text/plain")

    assert cid == "QmOne"
    assert seen["auth"] == "Bearer key-123"
    assert b"hello" in seen["content"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"Name": "a.txt"}),
    ],
)
async def test_upload_failures_raise_storage_error(response) -> None:
    with pytest.raises(StorageError):
        await _storage(lambda request: response).upload("a.txt", b"hello")
