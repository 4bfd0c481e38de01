"""
Common storage backend interface and the HTTP download it consumes.

A backend turns an open :class:`Download` into a durable public object.
Concrete backends live in :mod:`site_migrator.migrators.blob_storage`
(single-call put) and :mod:`site_migrator.migrators.s3_storage` (multipart
upload with an existence pre-check).
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Optional

import aiohttp

from ..models.content import MediaAsset


@dataclass
class StoredObject:
    key: str
    url: str
    size: Optional[int] = None
    mime_type: Optional[str] = None


@dataclass
class Download:
    """An HTTP response whose body has not been consumed yet."""

    url: str
    status: int
    chunks: Callable[[int], AsyncIterator[bytes]] = field(repr=False)
    content_type: Optional[str] = None
    content_length: Optional[int] = None
    release: Callable[[], None] = field(repr=False, default=lambda: None)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def iter_chunks(self, size: int) -> AsyncIterator[bytes]:
        return self.chunks(size)

    async def read(self) -> bytes:
        parts = [chunk async for chunk in self.chunks(64 * 1024)]
        return b"".join(parts)

    @classmethod
    def from_bytes(
        cls, url: str, data: bytes, *, status: int = 200, content_type: Optional[str] = None
    ) -> "Download":
        async def chunks(size: int) -> AsyncIterator[bytes]:
            for start in range(0, len(data), size):
                yield data[start:start + size]

        return cls(url=url, status=status, content_type=content_type, content_length=len(data), chunks=chunks)

    @classmethod
    def from_response(cls, resp: aiohttp.ClientResponse) -> "Download":
        length = resp.headers.get("Content-Length")
        return cls(
            url=str(resp.url),
            status=resp.status,
            content_type=resp.headers.get("Content-Type"),
            content_length=int(length) if length and length.isdigit() else None,
            chunks=resp.content.iter_chunked,
            release=resp.release,
        )


Fetch = Callable[[str], Awaitable[Download]]


def http_fetch(session: aiohttp.ClientSession, *, timeout: float = 120.0) -> Fetch:
    """Build a :data:`Fetch` that opens ``GET url`` on ``session``."""

    async def fetch(url: str) -> Download:
        resp = await session.get(url, timeout=aiohttp.ClientTimeout(total=timeout))
        return Download.from_response(resp)

    return fetch


class StorageBackend(abc.ABC):
    """Where migrated media ends up."""

    provider: str = ""

    def __init__(self, key_prefix: str = "blog") -> None:
        self.key_prefix = key_prefix.strip("/")

    def object_key(self, relative_path: str) -> str:
        """Storage key for ``wp-content/uploads/...``, under the key prefix."""
        parts = [p for p in f"{self.key_prefix}/{relative_path}".split("/") if p]
        return "/".join(parts)

    @abc.abstractmethod
    def owns_url(self, url: str) -> bool:
        """True when ``url`` points into this backend's public domain."""

    async def exists(self, key: str) -> Optional[StoredObject]:
        """Object already stored under ``key``, when the backend can tell."""
        return None

    @abc.abstractmethod
    async def upload(self, key: str, download: Download) -> StoredObject:
        """Store the body of ``download`` under ``key``."""

    @abc.abstractmethod
    async def delete(self, asset: MediaAsset) -> None:
        """Remove the stored object behind ``asset``."""
