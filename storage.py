"""Object storage uploads that return public URLs."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from errors import UPLOAD_ERROR, ServiceError
from services import auth_headers

logger = logging.getLogger(__name__)


class StorageBucketClient:
    def __init__(
        self,
        base_url: str,
        bucket: str = "images",
        api_key: str = "",
        timeout_s: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._bucket = bucket
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=10.0),
            headers=auth_headers(api_key),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def public_url(self, path: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{self._bucket}/{path.lstrip('/')}"

    async def upload(self, data: bytes, content_type: str, path: str) -> str:
        path = path.lstrip("/")
        url = f"{self._base_url}/storage/v1/object/{self._bucket}/{path}"
        try:
            response = await self._client.post(
                url,
                content=data,
                headers={"Content-Type": content_type, "x-upsert": "false"},
            )
        except httpx.HTTPError as exc:
            raise ServiceError(UPLOAD_ERROR, f"upload {path}: {exc}", retryable=True) from exc
        if response.is_error:
            raise ServiceError(
                UPLOAD_ERROR,
                f"upload {path}: {response.text or response.reason_phrase} ({response.status_code})",
            )
        logger.debug("uploaded %d bytes to %s", len(data), path)
        return self.public_url(path)
