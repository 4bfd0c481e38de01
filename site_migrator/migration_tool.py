"""
High-level orchestration of the legacy site migration.

This module defines a :class:`SiteMigrationTool` class that ties together
the extractors, parsers, migrators and utilities into complete commands:
content import (all items or one slug), URL discovery, body-class
backfill, media pruning, media reset, the media inventory and the visual
parity run with its computed-style report.

Configuration is supplied as a :class:`~site_migrator.config.MigrationConfig`;
by default the process-wide one from :func:`~site_migrator.config.get_config`.
Each command opens its own aiohttp session and duckdb connection and closes
them when it returns.
"""

from __future__ import annotations

import contextlib
import logging
import os
from typing import AsyncIterator, Dict, Iterator, List, Optional

import aiohttp
import duckdb
import pandas as pd

from .config import DiscoveryConfig, MigrationConfig, get_config
from .extractors.url_discovery import UrlDiscoverer, read_payload, write_payload
from .extractors.wordpress_api import WordPressClient
from .migrators.blob_pruner import PruneResult, prune
from .migrators.blob_storage import BlobStorage
from .migrators.content_importer import ContentImporter, backfill_body_classes
from .migrators.media_resolver import MediaResolver
from .migrators.s3_storage import S3Storage
from .migrators.storage import StorageBackend, http_fetch
from .models.content import ContentItem
from .models.reports import ImportSummary
from .parity.runner import ParityOutcome, ParityRunner, build_cases
from .parity.style_report import StyleReporter
from .store.content_store import ContentStore
from .utils.errors import ConfigError, StorageError
from .utils.reports import media_inventory

logger = logging.getLogger(__name__)

ROOT_URLS_FILE = os.path.join("testes", "parity", "root-urls.json")


class SiteMigrationTool:
    """
    Encapsulates the state shared by every migration command.  Detailed
    per-item success and failure information is recorded using the
    :mod:`site_migrator.utils.errors` module.
    """

    def __init__(self, config: Optional[MigrationConfig] = None) -> None:
        self.config = config or get_config()

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def open_store(self) -> Iterator[ContentStore]:
        path = self.config.database.path
        try:
            store = ContentStore(path)
        except duckdb.Error as exc:
            raise StorageError(f"Cannot open database {path}: {exc}") from exc
        try:
            yield store
        finally:
            store.close()

    @contextlib.asynccontextmanager
    async def open_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        connector = aiohttp.TCPConnector(limit=max(8, self.config.media.concurrency * 2))
        async with aiohttp.ClientSession(
            connector=connector, headers={"User-Agent": "site-migrator"}
        ) as session:
            yield session

    def build_backend(self, session: aiohttp.ClientSession) -> Optional[StorageBackend]:
        """Storage backend for the configured media mode, ``None`` for ``none``."""
        media = self.config.media
        mode = media.resolved_mode
        if mode == "blob":
            if not media.blob_token:
                raise ConfigError("MEDIA_MODE=blob requires BLOB_READ_WRITE_TOKEN")
            return BlobStorage(session, token=media.blob_token, api_url=media.blob_api_url, key_prefix=media.key_prefix)
        if mode == "s3":
            if not media.s3_bucket or not media.s3_region:
                raise ConfigError("MEDIA_MODE=s3 requires S3_BUCKET and AWS_REGION")
            return S3Storage(
                bucket=media.s3_bucket,
                region=media.s3_region,
                key_prefix=media.key_prefix,
                public_base_url=media.public_base_url,
                endpoint_url=media.s3_endpoint_url,
                part_size=media.part_size,
                upload_concurrency=media.upload_concurrency,
            )
        return None

    def _importer(self, store: ContentStore, session: aiohttp.ClientSession) -> ContentImporter:
        wp = WordPressClient(session, self.config.legacy.wp_base_url)
        backend = self.build_backend(session)
        resolver = MediaResolver(store, backend, http_fetch(session)) if backend else None
        return ContentImporter(
            store,
            wp,
            blog_prefix=self.config.legacy.blog_prefix,
            resolver=resolver,
            media_mode=self.config.media.resolved_mode,
            import_body_class=self.config.importer.import_body_class,
            concurrency=self.config.media.concurrency,
            report_dir=self.config.importer.report_dir,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def import_content(self) -> ImportSummary:
        with self.open_store() as store:
            async with self.open_session() as session:
                summary = await self._importer(store, session).import_all()
        counts = summary.counts()
        logger.info(
            "Import finished: %d created, %d updated, %d skipped, %d failed (%d uploads, %d rewritten)",
            counts["created"], counts["updated"], counts["skipped"], counts["failed"],
            summary.uploads_created, summary.uploads_rewritten,
        )
        return summary

    async def reimport(self, slug: str) -> Optional[ContentItem]:
        with self.open_store() as store:
            async with self.open_session() as session:
                item = await self._importer(store, session).reimport(slug)
        if item is None:
            logger.error("No page or post found with slug: %s", slug)
        else:
            logger.info("Reimported '%s' as %s (%s)", slug, item.path or "(home)", item.status.value)
        return item

    def default_out_file(self, scope: str) -> str:
        discovery = self.config.discovery
        if scope == "root" and discovery.out_file == DiscoveryConfig().out_file:
            return ROOT_URLS_FILE
        return discovery.out_file

    async def discover(
        self,
        *,
        scope: Optional[str] = None,
        mode: Optional[str] = None,
        validate: Optional[bool] = None,
        out_file: Optional[str] = None,
    ) -> str:
        """Discover legacy URLs and write the payload; returns its path."""
        discovery = self.config.discovery
        scope = scope or discovery.scope
        async with self.open_session() as session:
            discoverer = UrlDiscoverer(
                session,
                base_url=self.config.legacy.base_url,
                blog_prefix=self.config.legacy.blog_prefix,
                scope=scope,
                crawl_max=discovery.crawl_max,
                validate_concurrency=discovery.validate_concurrency,
            )
            payload = await discoverer.discover(
                mode=mode or discovery.mode,
                validate=discovery.validate_urls if validate is None else validate,
            )
        path = write_payload(payload, out_file or self.default_out_file(scope))
        logger.info("Wrote %d URLs to %s", len(payload.urls), path)
        return path

    async def backfill_body_classes(self, urls_file: Optional[str] = None) -> Dict[str, int]:
        payload = read_payload(urls_file or self.config.parity.urls_file)
        with self.open_store() as store:
            async with self.open_session() as session:
                counts = await backfill_body_classes(
                    store,
                    WordPressClient(session, self.config.legacy.wp_base_url),
                    payload.urls,
                    base_url=self.config.legacy.base_url,
                    blog_prefix=self.config.legacy.blog_prefix,
                    concurrency=self.config.importer.body_class_concurrency,
                )
        logger.info(
            "Body classes: %d total, %d updated, %d skipped, %d failed",
            counts["total"], counts["updated"], counts["skipped"], counts["failed"],
        )
        return counts

    async def prune(self, *, target_free_bytes: Optional[int] = None, mode: Optional[str] = None) -> PruneResult:
        with self.open_store() as store:
            async with self.open_session() as session:
                backend = self.build_backend(session)
                if backend is None:
                    raise ConfigError("Pruning needs a media backend (MEDIA_MODE=blob or s3)")
                return await prune(
                    store,
                    backend,
                    target_free_bytes=self.config.prune.target_free_bytes if target_free_bytes is None else target_free_bytes,
                    mode=mode or self.config.prune.mode,
                )

    def reset_media(self, provider: Optional[str] = None) -> int:
        with self.open_store() as store:
            deleted = store.delete_all_media(provider)
        logger.info("Deleted media asset rows: %d", deleted)
        return deleted

    def media_report(self) -> pd.DataFrame:
        with self.open_store() as store:
            frame = store.media_frame()
        return media_inventory(frame)

    async def parity(self, urls_file: Optional[str] = None) -> List[ParityOutcome]:
        payload = read_payload(urls_file or self.config.parity.urls_file)
        cases = build_cases(payload, self.config.parity)
        if not cases:
            raise ConfigError("No URLs selected for parity (check the payload and PARITY_URL_* filters)")
        outcomes = await ParityRunner(self.config.parity).run(cases)
        failed = [o for o in outcomes if not o.passed]
        for outcome in failed:
            logger.error("Parity mismatch: %s", outcome.describe())
        logger.info("Parity: %d passed, %d failed", len(outcomes) - len(failed), len(failed))
        return outcomes

    async def parity_style(self, urls_file: Optional[str] = None) -> str:
        """Write the computed-style report for the selected cases; returns the summary path."""
        payload = read_payload(urls_file or self.config.parity.urls_file)
        cases = build_cases(payload, self.config.parity)
        if not cases:
            raise ConfigError("No URLs selected for the style report (check the payload and PARITY_URL_* filters)")
        return await StyleReporter(self.config.parity).run(cases, legacy_base_url=payload.base_url)
