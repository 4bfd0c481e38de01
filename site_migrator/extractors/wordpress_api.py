"""
Read-only client for the legacy WordPress site.

Pages and posts come from the REST API
(``{wp_base}/wp-json/wp/v2/{pages|posts}``); the home page id and the body
classes come from the rendered HTML of the live site.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import aiohttp
from bs4 import BeautifulSoup

from ..utils.errors import FetchError
from ..utils.result import Ok, Result, Skipped

logger = logging.getLogger(__name__)

PER_PAGE = 100
MAX_PAGES = 200
COLLECTIONS = ("pages", "posts")

_HOME_ID_RE = re.compile(r"wp-json/wp/v2/pages/(\d+)")


def to_content_path(link: str, blog_prefix: str = "/blog") -> Optional[str]:
    """Map a WordPress permalink to a content path.

    Args:
        link (str): Absolute permalink, e.g. ``https://site/blog/about/``.
        blog_prefix (str): Path prefix the blog is served under.

    Returns:
        Optional[str]: ``"about"`` for the example above, ``""`` for the blog
        root, or ``None`` when the link lives outside the prefix.
    """
    path = urlsplit(link).path or "/"
    path = "/" + path.strip("/")
    prefix = "/" + blog_prefix.strip("/")
    if path == prefix:
        return ""
    if not path.startswith(prefix + "/"):
        return None
    return path[len(prefix) + 1:]


def extract_body_class(html: str) -> Optional[str]:
    """Class attribute of the ``<body>`` element, whitespace collapsed."""
    soup = BeautifulSoup(html, "html.parser")
    body = soup.find("body")
    if body is None:
        return None
    classes = body.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    value = " ".join(classes).strip()
    return value or None


class WordPressClient:
    def __init__(self, session: aiohttp.ClientSession, wp_base_url: str, *, timeout: float = 60.0) -> None:
        self.session = session
        self.wp_base_url = wp_base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _api(self, collection: str) -> str:
        return f"{self.wp_base_url}/wp-json/wp/v2/{collection}"

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Tuple[int, Any]:
        async with self.session.get(
            url, params=params, headers={"Accept": "application/json"}, timeout=self.timeout
        ) as resp:
            if resp.status >= 300:
                return resp.status, None
            return resp.status, await resp.json(content_type=None)

    async def fetch_text(self, url: str) -> str:
        """GET ``url`` as text; raises :class:`FetchError` on a non-2xx."""
        async with self.session.get(url, headers={"Accept": "text/html"}, timeout=self.timeout) as resp:
            if not 200 <= resp.status < 300:
                raise FetchError(url, resp.status)
            return await resp.text()

    async def fetch_collection(self, collection: str) -> List[Dict[str, Any]]:
        """
        Every item of a REST collection, page by page.

        A ``400`` answer or an empty page ends the collection; any other
        non-2xx status raises :class:`FetchError`.
        """
        items: List[Dict[str, Any]] = []
        url = self._api(collection)
        for page in range(1, MAX_PAGES):
            status, batch = await self._get_json(url, {"per_page": PER_PAGE, "page": page})
            if status == 400:
                break
            if batch is None:
                raise FetchError(f"{url}?page={page}", status)
            if not isinstance(batch, list) or not batch:
                break
            items.extend(batch)
            logger.debug("Fetched %s page %d (%d items)", collection, page, len(batch))
        logger.info("Fetched %d %s from %s", len(items), collection, self.wp_base_url)
        return items

    async def fetch_by_slug(self, slug: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        """Look ``slug`` up in pages, then posts; returns ``(collection, item)``."""
        for collection in COLLECTIONS:
            status, batch = await self._get_json(self._api(collection), {"slug": slug})
            if batch is None and status != 400:
                raise FetchError(f"{self._api(collection)}?slug={slug}", status)
            if isinstance(batch, list) and batch:
                return collection, batch[0]
        return None

    async def get_home_page_id(self) -> Optional[int]:
        """Id of the page WordPress renders at the blog root, if advertised."""
        try:
            html = await self.fetch_text(f"{self.wp_base_url}/")
        except FetchError as exc:
            logger.warning("Could not detect the home page: %s", exc)
            return None
        match = _HOME_ID_RE.search(html)
        return int(match.group(1)) if match else None

    async def fetch_legacy_body_class(self, url: str) -> Result[str]:
        """Body class of the rendered legacy page, or the reason there is none."""
        try:
            html = await self.fetch_text(url)
        except FetchError as exc:
            return Skipped(f"HTTP {exc.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            return Skipped(f"{type(exc).__name__}: {exc}")
        value = extract_body_class(html)
        if value is None:
            return Skipped("no body class")
        return Ok(value)
