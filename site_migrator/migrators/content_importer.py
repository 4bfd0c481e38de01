"""
Import of WordPress pages and posts into the content store.

:class:`ContentImporter` fetches the REST collections, derives the content
path of every item, rewrites its body HTML (legacy base URL to the blog
prefix, upload references to migrated media) and upserts it by path.
Importing twice converges on the same rows.

:func:`backfill_body_classes` refreshes ``legacy_body_class`` of already
imported items from the live legacy pages listed in a discovery payload.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set

import aiohttp

from ..extractors.wordpress_api import WordPressClient, extract_body_class, to_content_path
from ..models.content import ContentItem, ContentStatus, ContentType, HtmlBlock
from ..models.reports import ImportSummary
from ..parsers.html_rewriter import rewrite_uploads_in_html
from ..store.content_store import ContentStore
from ..utils.errors import FetchError, report_error, report_ok
from ..utils.reports import write_json_report, write_media_map
from ..utils.result import Ok
from .media_resolver import MediaResolver

logger = logging.getLogger(__name__)

_KINDS = {"pages": ContentType.PAGE, "posts": ContentType.POST}


def _rendered(item: Dict[str, Any], field: str) -> str:
    value = item.get(field) or {}
    if isinstance(value, dict):
        value = value.get("rendered")
    return str(value or "")


class ContentImporter:
    """
    Imports WordPress items into a :class:`ContentStore`.

    :param store: Destination store.
    :param wp: Client for the legacy WordPress site.
    :param blog_prefix: Path prefix the blog is served under on both sites.
    :param resolver: Media resolver; ``None`` leaves upload URLs untouched.
    :param media_mode: Recorded in the import report.
    :param import_body_class: Scrape the body class of each live page.
    :param concurrency: Media resolutions in flight per document.
    :param report_dir: Directory of the audit files.
    """

    def __init__(
        self,
        store: ContentStore,
        wp: WordPressClient,
        *,
        blog_prefix: str = "/blog",
        resolver: Optional[MediaResolver] = None,
        media_mode: str = "none",
        import_body_class: bool = True,
        concurrency: int = 4,
        report_dir: str = "reports",
    ) -> None:
        self.store = store
        self.wp = wp
        self.wp_base_url = wp.wp_base_url
        self.blog_prefix = "/" + blog_prefix.strip("/")
        self.resolver = resolver
        self.import_body_class = import_body_class
        self.concurrency = concurrency
        self.report_dir = report_dir
        self.home_id: Optional[int] = None
        self.summary = ImportSummary(wp_base_url=self.wp_base_url, media_mode=media_mode)
        self.media_map: Dict[str, str] = {}
        self.used_by: Dict[str, Set[str]] = defaultdict(set)

    def rewrite_wp_urls(self, html: str) -> str:
        """Point absolute links to the legacy blog at the new blog prefix."""
        return html.replace(self.wp_base_url, self.blog_prefix)

    async def import_item(self, item: Dict[str, Any], content_type: ContentType) -> Optional[ContentItem]:
        """
        Import one REST item.

        Returns the stored item, or ``None`` when the item's link lies
        outside the blog prefix (counted as skipped).
        """
        link = str(item.get("link") or "")
        path = to_content_path(link, self.blog_prefix)
        if path is None:
            self.summary.skipped += 1
            report_error("CONTENT_SKIPPED", link or f"wp:{item.get('id')}")
            return None
        wp_id = item.get("id")
        if self.home_id is not None and wp_id == self.home_id:
            path = ""

        html = self.rewrite_wp_urls(_rendered(item, "content"))
        if self.resolver is not None:
            rewritten = await rewrite_uploads_in_html(
                html, self.resolver.resolve, wp_base_url=self.wp_base_url, concurrency=self.concurrency
            )
            html = rewritten.html
            for source, resolved in rewritten.mapped:
                self.media_map[source] = resolved
                self.used_by[source].add(path)
            self.summary.uploads_rewritten += len(rewritten.mapped)

        yoast = item.get("yoast_head_json") or {}
        fields: Dict[str, Any] = {
            "type": content_type,
            "legacy_wp_id": wp_id,
            "title": _rendered(item, "title"),
            "status": ContentStatus.PUBLISHED if item.get("status") == "publish" else ContentStatus.DRAFT,
            "content": [HtmlBlock(html=html)],
            "seo_title": yoast.get("title") if isinstance(yoast.get("title"), str) else None,
            "seo_desc": yoast.get("description") if isinstance(yoast.get("description"), str) else None,
        }
        if self.import_body_class and link:
            body_class = await self.wp.fetch_legacy_body_class(link)
            if isinstance(body_class, Ok):
                fields["legacy_body_class"] = body_class.value
            else:
                logger.debug("No body class for %s: %s", link, body_class.reason)

        stored, created = self.store.upsert(path, fields)
        if created:
            self.summary.created += 1
        else:
            self.summary.updated += 1
        report_ok("CONTENT_UPSERTED", path or "(home)", {"created": created, "wpId": wp_id})
        logger.info("%s %s '%s'", "Created" if created else "Updated", content_type.value, path or "(home)")
        return stored

    async def _import_batch(self, items: Iterable[Dict[str, Any]], content_type: ContentType) -> None:
        for item in items:
            try:
                await self.import_item(item, content_type)
            except Exception as exc:
                self.summary.failed += 1
                report_error("CONTENT_FAILED", str(item.get("link") or item.get("id")), exc)

    async def import_all(self) -> ImportSummary:
        """Import every page and post, then write the audit files."""
        self.home_id = await self.wp.get_home_page_id()
        self.summary.home_wp_page_id = self.home_id
        pages = await self.wp.fetch_collection("pages")
        posts = await self.wp.fetch_collection("posts")
        self.summary.pages_fetched = len(pages)
        self.summary.posts_fetched = len(posts)

        await self._import_batch(pages, ContentType.PAGE)
        await self._import_batch(posts, ContentType.POST)

        if self.resolver is not None:
            self.summary.uploads_created = self.resolver.uploaded
        self.write_reports()
        return self.summary

    async def reimport(self, slug: str) -> Optional[ContentItem]:
        """Import the single page or post with ``slug`` (pages are searched first)."""
        found = await self.wp.fetch_by_slug(slug)
        if found is None:
            return None
        collection, item = found
        logger.info("Found %s '%s' (id %s)", collection[:-1], _rendered(item, "title"), item.get("id"))
        self.home_id = await self.wp.get_home_page_id()
        stored = await self.import_item(item, _KINDS[collection])
        if self.resolver is not None:
            self.summary.uploads_created = self.resolver.uploaded
        return stored

    def write_reports(self) -> List[str]:
        written = [
            write_json_report(
                self.summary.model_dump(by_alias=True),
                out_path=os.path.join(self.report_dir, "generated-import.json"),
            )
        ]
        if self.resolver is not None:
            written.append(
                write_media_map(
                    self.media_map,
                    self.used_by,
                    wp_base_url=self.wp_base_url,
                    out_path=os.path.join(self.report_dir, "generated-media-map.json"),
                )
            )
        return written


async def backfill_body_classes(
    store: ContentStore,
    wp: WordPressClient,
    urls: Iterable[str],
    *,
    base_url: str,
    blog_prefix: str = "/blog",
    concurrency: int = 5,
) -> Dict[str, int]:
    """
    Refresh ``legacy_body_class`` for imported items from their live pages.

    Only URLs under ``base_url + blog_prefix`` are considered; items that do
    not exist yet or already carry the same value are skipped.

    :return: ``total``, ``updated``, ``skipped`` and ``failed`` counts.
    """
    prefix = "/" + blog_prefix.strip("/")
    selected = [url for url in urls if url.startswith(f"{base_url.rstrip('/')}{prefix}")]
    counts = {"total": len(selected), "updated": 0, "skipped": 0, "failed": 0}
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def backfill(url: str) -> None:
        path = to_content_path(url, prefix)
        if path is None:
            counts["skipped"] += 1
            return
        async with semaphore:
            try:
                html = await wp.fetch_text(url)
            except (FetchError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
                counts["failed"] += 1
                report_error("BODY_CLASS_FAILED", url, exc)
                return
        body_class = extract_body_class(html)
        existing = store.get_by_path(path, include_draft=True)
        if not body_class or existing is None or existing.legacy_body_class == body_class:
            counts["skipped"] += 1
            return
        store.upsert(path, {"legacy_body_class": body_class})
        counts["updated"] += 1
        report_ok("BODY_CLASS_UPDATED", path or "(home)")

    await asyncio.gather(*(backfill(url) for url in selected))
    return counts
