"""
Discovery of the legacy page URLs the parity suite compares.

Two strategies are tried in order:

* **sitemap**: ``sitemap_index.xml`` / ``sitemap.xml`` under the blog prefix,
  then under the site root.  A sitemap index is flattened by fetching its
  child sitemaps.
* **crawl**: a breadth-first, same-origin crawl from the blog root following
  ``<a href>`` links that stay under the prefix, capped at ``crawl_max``
  pages.

Whichever list comes out is normalized (fragment dropped, trailing slash for
extension-less paths), stripped of asset-like paths, deduplicated and sorted.
An optional validation pass keeps only the URLs answering 2xx.

The ``root`` scope crawls the static root site instead, from ``/`` and
excluding the blog prefix.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import xml.etree.ElementTree as ET
from collections import deque
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set, Tuple
from urllib.parse import urldefrag, urljoin, urlsplit, urlunsplit

import aiohttp
from bs4 import BeautifulSoup

from ..models.reports import DiscoveryPayload, DiscoveryResult, ValidationResult, ValidationSummary
from ..utils.errors import ConfigError, MigrationError

logger = logging.getLogger(__name__)

ASSET_EXTENSIONS = (
    ".xml", ".json", ".txt", ".css", ".js",
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg",
    ".mp4", ".mov", ".webm", ".pdf",
)
WORDPRESS_ASSET_DIRS = ("/wp-content/", "/wp-includes/", "/wp-json/")
NON_OK_SAMPLE_SIZE = 50
MAX_SITEMAP_DEPTH = 3


def is_asset_path(path: str) -> bool:
    """True for paths that are files rather than pages."""
    if any(marker in path for marker in WORDPRESS_ASSET_DIRS):
        return True
    return path.lower().endswith(ASSET_EXTENSIONS)


def normalize_page_url(url: str) -> str:
    """Drop the fragment and add a trailing slash to extension-less paths."""
    url, _ = urldefrag(url)
    parts = urlsplit(url)
    path = parts.path or "/"
    if not path.endswith("/") and "." not in path:
        path += "/"
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, ""))


def parse_sitemap(xml_text: str) -> Tuple[List[str], bool]:
    """
    Extract the ``<loc>`` entries of a sitemap document.

    :return: The locations and whether the document is a sitemap index.
    :raises xml.etree.ElementTree.ParseError: if the document is malformed.
    """
    root = ET.fromstring(xml_text.strip())
    is_index = root.tag.rsplit("}", 1)[-1].lower() == "sitemapindex"
    locs = [
        (el.text or "").strip()
        for el in root.iter()
        if el.tag.rsplit("}", 1)[-1] == "loc" and (el.text or "").strip()
    ]
    return locs, is_index


class UrlDiscoverer:
    """
    Finds and validates legacy page URLs.

    :param session: Open aiohttp session used for every request.
    :param base_url: Legacy origin, ``scheme://host``.
    :param blog_prefix: Path prefix of the blog (``/blog``).
    :param scope: ``blog`` to list blog pages, ``root`` to list the static
        root site (everything outside the blog prefix).
    :param crawl_max: Page cap for the crawl strategy.
    :param validate_concurrency: Requests in flight during validation.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_url: str,
        blog_prefix: str = "/blog",
        scope: str = "blog",
        crawl_max: int = 4000,
        validate_concurrency: int = 6,
        timeout: float = 30.0,
    ) -> None:
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.blog_prefix = "/" + blog_prefix.strip("/")
        self.scope = scope
        self.crawl_max = crawl_max
        self.validate_concurrency = max(1, validate_concurrency)
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    # ------------------------------------------------------------------
    # Scope rules
    # ------------------------------------------------------------------

    def _under_prefix(self, path: str) -> bool:
        return path == self.blog_prefix or path.startswith(self.blog_prefix + "/")

    def in_scope(self, url: str) -> bool:
        parts = urlsplit(url)
        if f"{parts.scheme}://{parts.netloc}" != self.base_url:
            return False
        path = parts.path or "/"
        if is_asset_path(path):
            return False
        if self.scope == "root":
            return not self._under_prefix(path)
        return self._under_prefix(path)

    def filter_urls(self, urls: Iterable[str]) -> List[str]:
        """Absolutize, scope-check, normalize, deduplicate and sort."""
        kept: Set[str] = set()
        for raw in urls:
            absolute = urljoin(self.base_url + "/", raw.strip())
            if self.in_scope(absolute):
                kept.add(normalize_page_url(absolute))
        return sorted(kept)

    @property
    def start_url(self) -> str:
        if self.scope == "root":
            return f"{self.base_url}/"
        return f"{self.base_url}{self.blog_prefix}/"

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _fetch_text(self, url: str) -> Tuple[int, Optional[str]]:
        """``(status, body)``; status ``0`` and no body on transport errors."""
        try:
            async with self.session.get(url, timeout=self.timeout, allow_redirects=True) as resp:
                if not 200 <= resp.status < 300:
                    return resp.status, None
                return resp.status, await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.debug("GET %s failed: %s", url, exc)
            return 0, None

    # ------------------------------------------------------------------
    # Sitemap strategy
    # ------------------------------------------------------------------

    def sitemap_candidates(self) -> List[str]:
        return [
            f"{self.base_url}{self.blog_prefix}/sitemap_index.xml",
            f"{self.base_url}{self.blog_prefix}/sitemap.xml",
            f"{self.base_url}/sitemap_index.xml",
            f"{self.base_url}/sitemap.xml",
        ]

    async def _read_sitemap(self, url: str) -> Optional[Tuple[List[str], bool]]:
        status, body = await self._fetch_text(url)
        if body is None:
            logger.info("Sitemap absent at %s (status %s)", url, status or "unreachable")
            return None
        try:
            return parse_sitemap(body)
        except ET.ParseError as exc:
            logger.warning("Sitemap malformed at %s: %s", url, exc)
            return None

    async def _flatten(self, locs: List[str], depth: int) -> List[str]:
        children = await asyncio.gather(*(self._read_sitemap(loc) for loc in locs))
        urls: List[str] = []
        for child in children:
            if child is None:
                continue
            child_locs, is_index = child
            if is_index and depth < MAX_SITEMAP_DEPTH:
                urls.extend(await self._flatten(child_locs, depth + 1))
            elif not is_index:
                urls.extend(child_locs)
        return urls

    async def discover_from_sitemaps(self) -> Optional[DiscoveryResult]:
        for sitemap_url in self.sitemap_candidates():
            parsed = await self._read_sitemap(sitemap_url)
            if parsed is None:
                continue
            locs, is_index = parsed
            if not locs:
                logger.info("Sitemap at %s lists no URLs", sitemap_url)
                continue
            if not is_index:
                return DiscoveryResult(mode="sitemap", sitemap_url=sitemap_url, urls=locs)
            child_locs = await self._flatten(locs, 1)
            if child_locs:
                return DiscoveryResult(mode="sitemap-index", sitemap_url=sitemap_url, urls=child_locs)
            logger.info("Sitemap index at %s yielded no URLs", sitemap_url)
        return None

    # ------------------------------------------------------------------
    # Crawl strategy
    # ------------------------------------------------------------------

    async def crawl(self) -> DiscoveryResult:
        start = self.start_url
        queue = deque([start])
        seen: Set[str] = set()
        found: List[str] = []

        while queue and len(found) < self.crawl_max:
            url = queue.popleft()
            if url in seen:
                continue
            seen.add(url)

            _, html = await self._fetch_text(url)
            if html is None:
                continue
            found.append(url)

            soup = BeautifulSoup(html, "html.parser")
            for anchor in soup.find_all("a", href=True):
                absolute = urljoin(url, anchor["href"].strip())
                if not self.in_scope(absolute):
                    continue
                candidate = normalize_page_url(absolute)
                if candidate not in seen:
                    queue.append(candidate)

        logger.info("Crawl from %s visited %d pages", start, len(found))
        return DiscoveryResult(mode="crawl", start_url=start, urls=found)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def check_url(self, url: str) -> ValidationResult:
        try:
            async with self.session.get(url, timeout=self.timeout, allow_redirects=True) as resp:
                return ValidationResult(url=url, status=resp.status, ok=200 <= resp.status < 300)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            return ValidationResult(url=url, status=0, ok=False, error=str(exc) or type(exc).__name__)

    async def validate(self, urls: List[str]) -> List[ValidationResult]:
        """GET every URL with a bounded pool; results keep the input order."""
        semaphore = asyncio.Semaphore(self.validate_concurrency)

        async def bounded(url: str) -> ValidationResult:
            async with semaphore:
                return await self.check_url(url)

        return list(await asyncio.gather(*(bounded(url) for url in urls)))

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def discover(self, *, mode: str = "auto", validate: bool = True) -> DiscoveryPayload:
        """
        Run discovery and build the payload written for the parity suite.

        :raises ConfigError: for ``mode="sitemap"`` with the root scope.
        :raises MigrationError: when no strategy produced any URL.
        """
        discovery: Optional[DiscoveryResult] = None
        if self.scope == "root":
            if mode == "sitemap":
                raise ConfigError("Root scope discovery supports crawl only")
            discovery = await self.crawl()
        else:
            if mode in ("sitemap", "auto"):
                discovery = await self.discover_from_sitemaps()
                if discovery is None and mode == "auto":
                    logger.info("No usable sitemap, falling back to crawl")
            if discovery is None and mode in ("crawl", "auto"):
                discovery = await self.crawl()
        if discovery is None or not discovery.urls:
            raise MigrationError("Failed to discover URLs (no sitemap and crawl found nothing)")

        urls = self.filter_urls(discovery.urls)
        validation: Optional[ValidationSummary] = None
        if validate:
            results = await self.validate(urls)
            failures = [r for r in results if not r.ok]
            urls = sorted(r.url for r in results if r.ok)
            validation = ValidationSummary(
                total=len(results),
                ok=len(urls),
                non_ok=len(failures),
                non_ok_sample=failures[:NON_OK_SAMPLE_SIZE],
            )
            logger.info("Validated %d URLs: %d ok, %d not ok", len(results), len(urls), len(failures))
        discovery.urls = urls

        return DiscoveryPayload(
            generated_at=datetime.now(timezone.utc).isoformat(),
            base_url=self.base_url,
            blog_prefix=self.blog_prefix,
            scope=self.scope,
            discovery=discovery,
            validation=validation,
            urls=urls,
        )


def write_payload(payload: DiscoveryPayload, out_file: str) -> str:
    os.makedirs(os.path.dirname(out_file) or ".", exist_ok=True)
    with open(out_file, "w", encoding="utf-8") as f:
        f.write(payload.model_dump_json(by_alias=True, indent=2))
    return out_file


def read_payload(path: str) -> DiscoveryPayload:
    with open(path, "r", encoding="utf-8") as f:
        return DiscoveryPayload.model_validate(json.load(f))
