"""Content-addressed storage provider client."""

from __future__ import annotations

import logging

import httpx

from creatorhub.core.settings import settings

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when the storage provider rejects or garbles an upload."""


class StorageClient:
    """Upload files to an IPFS-style pinning service and return the CID."""

    def __init__(
        self,
        api_key: str,
        upload_url: str,
        *,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._upload_url = upload_url
        self._timeout = timeout
        self._http_client = http_client

    async def upload(self, filename: str, content: bytes, content_type: str | None = None) -> str:
        files = {"file": (filename, content, content_type or "application/octet-stream")}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            if self._http_client is not None:
                response = await self._http_client.post(self._upload_url, files=files, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._upload_url, files=files, headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Storage upload of %s failed: %s", filename, exc)
            raise StorageError(f"Upload failed: {exc}") from exc
        except ValueError as exc:
            raise StorageError("Storage provider returned invalid JSON") from exc

        data = body.get("data", body) if isinstance(body, dict) else {}
        cid = data.get("Hash") if isinstance(data, dict) else None
        if not cid:
            raise StorageError("Storage provider did not return a CID")
        logger.info("Uploaded %s (%d bytes) as %s", filename, len(content), cid)
        return str(cid)


def get_storage_client() -> StorageClient | None:
    """Return a storage client, or None when no API key is configured."""
    if not settings.storage_api_key:
        return None
    return StorageClient(
        settings.storage_api_key,
        settings.storage_upload_url,
        timeout=settings.storage_timeout_seconds,
    )
