"""
S3 storage: multipart upload with an existence pre-check.

boto3 is synchronous, so every client call runs in the default executor and
the event loop keeps serving other downloads meanwhile.  The legacy
response body is spooled in fixed-size chunks (memory up to one part, disk
beyond) and handed to ``upload_fileobj``, which splits it into
``part_size`` parts uploaded ``upload_concurrency`` at a time.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from tempfile import SpooledTemporaryFile
from typing import Any, Callable, Optional

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..models.content import MediaAsset
from ..utils.errors import RateLimitedError, StorageError
from .storage import Download, StorageBackend, StoredObject

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}
_THROTTLE_CODES = {"SlowDown", "Throttling", "ThrottlingException", "TooManyRequests", "429", "503"}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3Storage(StorageBackend):
    provider = "s3"

    def __init__(
        self,
        *,
        bucket: str,
        region: str,
        key_prefix: str = "blog",
        public_base_url: str = "",
        endpoint_url: Optional[str] = None,
        part_size: int = 8 * 1024 * 1024,
        upload_concurrency: int = 4,
        client: Any = None,
    ) -> None:
        super().__init__(key_prefix)
        self.bucket = bucket
        self.region = region
        self.public_base_url = public_base_url.rstrip("/")
        self.part_size = part_size
        self.client = client or boto3.client("s3", region_name=region, endpoint_url=endpoint_url)
        self.transfer_config = TransferConfig(
            multipart_threshold=part_size,
            multipart_chunksize=part_size,
            max_concurrency=upload_concurrency,
        )

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def owns_url(self, url: str) -> bool:
        return url.startswith(self.public_url(""))

    def key_from_url(self, url: str) -> Optional[str]:
        base = self.public_url("")
        return url[len(base):] if url.startswith(base) else None

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    async def exists(self, key: str) -> Optional[StoredObject]:
        try:
            head = await self._call(self.client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return None
            raise StorageError(f"HEAD {key} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"HEAD {key} failed: {exc}") from exc
        return StoredObject(
            key=key,
            url=self.public_url(key),
            size=head.get("ContentLength"),
            mime_type=head.get("ContentType"),
        )

    async def upload(self, key: str, download: Download) -> StoredObject:
        extra = {"ContentType": download.content_type} if download.content_type else {}
        with SpooledTemporaryFile(max_size=self.part_size) as spool:
            async for chunk in download.iter_chunks(1024 * 1024):
                spool.write(chunk)
            size = spool.tell()
            spool.seek(0)
            try:
                await self._call(
                    self.client.upload_fileobj,
                    spool,
                    self.bucket,
                    key,
                    ExtraArgs=extra,
                    Config=self.transfer_config,
                )
            except (BotoCoreError, ClientError) as exc:
                raise StorageError(f"S3 upload of {key} failed: {exc}") from exc
        return StoredObject(key=key, url=self.public_url(key), size=size, mime_type=download.content_type)

    async def delete(self, asset: MediaAsset) -> None:
        key = asset.key or self.key_from_url(asset.url)
        if not key:
            raise StorageError(f"No S3 key for {asset.url}")
        try:
            await self._call(self.client.delete_object, Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _THROTTLE_CODES:
                raise RateLimitedError(f"DELETE {key}: {exc}") from exc
            raise StorageError(f"DELETE {key} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"DELETE {key} failed: {exc}") from exc
