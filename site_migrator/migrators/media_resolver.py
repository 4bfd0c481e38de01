"""
Resolution of legacy upload URLs to durable copies in object storage.

:class:`MediaResolver` is the resolution strategy handed to
:func:`site_migrator.parsers.html_rewriter.rewrite_uploads_in_html`.  For a
given upload URL it

1. canonicalizes the URL (size variants collapse onto the original),
2. returns the recorded asset when it already lives on the current backend,
3. otherwise asks the backend whether the object survived a lost record,
4. otherwise downloads the legacy file (retrying transport errors only),
   uploads it and records the mapping.

Every failure ends in ``None`` and a report entry; the caller keeps the
legacy URL in that case.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlsplit

from ..parsers.canonical import canonicalize_upload_url, upload_relative_path
from ..store.content_store import ContentStore
from ..utils.errors import MigrationError, report_error, report_ok
from ..utils.retry import DOWNLOAD_POLICY, RetryPolicy, with_retries
from .storage import Download, Fetch, StorageBackend, StoredObject

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    url: str
    created: bool
    source_url: str


def _filename(url: str) -> str:
    return unquote(posixpath.basename(urlsplit(url).path)) or "upload"


class MediaResolver:
    """Idempotent ``source URL -> stored URL`` mapping for one backend."""

    def __init__(
        self,
        store: ContentStore,
        backend: StorageBackend,
        fetch: Fetch,
        *,
        policy: RetryPolicy = DOWNLOAD_POLICY,
    ) -> None:
        self.store = store
        self.backend = backend
        self.fetch = fetch
        self.policy = policy
        self.uploaded = 0

    def _record(self, source_url: str, stored: StoredObject, download: Optional[Download] = None) -> None:
        mime_type = stored.mime_type or (download.content_type if download else None)
        size = stored.size if stored.size is not None else (download.content_length if download else None)
        self.store.save_media(
            source_url=source_url,
            provider=self.backend.provider,
            url=stored.url,
            key=stored.key,
            filename=_filename(source_url),
            mime_type=mime_type,
            size=size,
        )

    async def ensure(self, source_url: str) -> Optional[Resolution]:
        """
        Make sure ``source_url`` has a stored copy.

        :param source_url: Absolute upload URL, canonical or not.
        :return: The resolution, or ``None`` when the asset could not be
            migrated (the reason is logged and reported).
        """
        canonical = canonicalize_upload_url(source_url)
        provider = self.backend.provider

        existing = self.store.find_media(canonical, provider)
        if existing is not None:
            if self.backend.owns_url(existing.url):
                return Resolution(url=existing.url, created=False, source_url=canonical)
            logger.info("Stale %s record for %s (%s), resolving again", provider, canonical, existing.url)

        relative = upload_relative_path(canonical)
        if relative is None:
            logger.warning("Not an upload URL, leaving as is: %s", canonical)
            return None
        key = self.backend.object_key(relative)

        try:
            found = await self.backend.exists(key)
        except MigrationError as exc:
            report_error("MEDIA_UPLOAD", canonical, exc)
            return None
        if found is not None:
            self._record(canonical, found)
            logger.info("Reusing stored object %s for %s", key, canonical)
            return Resolution(url=found.url, created=False, source_url=canonical)

        try:
            download = await with_retries(
                lambda: self.fetch(canonical), self.policy, label=f"GET {canonical}"
            )
        except Exception as exc:
            report_error("MEDIA_FETCH", canonical, exc)
            return None

        try:
            if not download.ok:
                logger.warning("Skipping %s: legacy answered %s", canonical, download.status)
                report_error("MEDIA_FETCH", canonical, MigrationError(f"HTTP {download.status}"))
                return None
            try:
                stored = await self.backend.upload(key, download)
            except Exception as exc:
                report_error("MEDIA_UPLOAD", canonical, exc)
                return None
            self._record(canonical, stored, download)
        finally:
            download.release()

        self.uploaded += 1
        report_ok("MEDIA_UPLOADED", canonical, {"url": stored.url, "key": key})
        return Resolution(url=stored.url, created=True, source_url=canonical)

    async def resolve(self, source_url: str) -> Optional[str]:
        resolution = await self.ensure(source_url)
        return resolution.url if resolution else None
