"""
Blob-style storage: one ``PUT`` per object, public URL in the response.

Talks to the blob HTTP API directly (``PUT {api}/{pathname}`` to store,
``POST {api}/delete`` to remove) with the read/write token as bearer.
"""

from __future__ import annotations

import logging
from typing import Dict
from urllib.parse import quote, urlsplit

import aiohttp

from ..models.content import MediaAsset
from ..utils.errors import RateLimitedError, StorageError
from .storage import Download, StorageBackend, StoredObject

logger = logging.getLogger(__name__)

BLOB_API_VERSION = "7"
PUBLIC_DOMAIN_SUFFIX = ".blob.vercel-storage.com"


class BlobStorage(StorageBackend):
    provider = "blob"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        token: str,
        api_url: str = "https://blob.vercel-storage.com",
        key_prefix: str = "blog",
    ) -> None:
        super().__init__(key_prefix)
        self.session = session
        self.token = token
        self.api_url = api_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        return {"authorization": f"Bearer {self.token}", "x-api-version": BLOB_API_VERSION}

    def owns_url(self, url: str) -> bool:
        return urlsplit(url).netloc.endswith(PUBLIC_DOMAIN_SUFFIX)

    async def _check(self, resp: aiohttp.ClientResponse, action: str) -> None:
        if resp.status == 429:
            raise RateLimitedError(f"{action}: Too Many Requests")
        if resp.status >= 400:
            detail = await resp.text()
            raise StorageError(f"{action} -> {resp.status}: {detail[:200]}")

    async def upload(self, key: str, download: Download) -> StoredObject:
        data = await download.read()
        headers = {
            **self._headers(),
            "access": "public",
            "x-add-random-suffix": "0",
            "x-allow-overwrite": "1",
        }
        if download.content_type:
            headers["x-content-type"] = download.content_type
        try:
            async with self.session.put(f"{self.api_url}/{quote(key)}", data=data, headers=headers) as resp:
                await self._check(resp, f"PUT {key}")
                body = await resp.json()
        except aiohttp.ClientError as exc:
            raise StorageError(f"PUT {key} failed: {exc}") from exc
        return StoredObject(key=key, url=body["url"], size=len(data), mime_type=download.content_type)

    async def delete(self, asset: MediaAsset) -> None:
        try:
            async with self.session.post(
                f"{self.api_url}/delete", json={"urls": [asset.url]}, headers=self._headers()
            ) as resp:
                await self._check(resp, f"DELETE {asset.url}")
        except aiohttp.ClientError as exc:
            raise StorageError(f"DELETE {asset.url} failed: {exc}") from exc
