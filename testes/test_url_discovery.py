import asyncio
import json
import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
pytest.importorskip("bs4")

from site_migrator.extractors.url_discovery import (
    UrlDiscoverer,
    is_asset_path,
    normalize_page_url,
    parse_sitemap,
    read_payload,
    write_payload,
)
from site_migrator.models.reports import ValidationResult
from site_migrator.utils.errors import ConfigError, MigrationError


BASE = "https://carlagannis.com"

URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  {}
</urlset>"""
INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  {}
</sitemapindex>"""


def urlset(*locs):
    return URLSET.format("".join(f"<url><loc>{loc}</loc></url>" for loc in locs))


def index(*locs):
    return INDEX.format("".join(f"<sitemap><loc>{loc}</loc></sitemap>" for loc in locs))


class FakeDiscoverer(UrlDiscoverer):
    """Serves canned bodies instead of going to the network."""

    def __init__(self, pages, *, statuses=None, **kwargs):
        kwargs.setdefault("base_url", BASE)
        super().__init__(session=None, **kwargs)
        self.pages = pages
        self.statuses = statuses or {}
        self.fetched = []

    async def _fetch_text(self, url):
        self.fetched.append(url)
        if url in self.pages:
            return 200, self.pages[url]
        return 404, None

    async def check_url(self, url):
        status = self.statuses.get(url, 200)
        return ValidationResult(url=url, status=status, ok=200 <= status < 300)


def test_is_asset_path():
    assert is_asset_path("/blog/wp-content/uploads/a.jpg")
    assert is_asset_path("/blog/feed.XML")
    assert is_asset_path("/blog/wp-json/wp/v2/pages")
    assert not is_asset_path("/blog/about/")
    assert not is_asset_path("/blog/2020/01/post")


def test_normalize_page_url():
    assert normalize_page_url(f"{BASE}/blog/about#team") == f"{BASE}/blog/about/"
    assert normalize_page_url(f"{BASE}/blog/page.html") == f"{BASE}/blog/page.html"
    assert normalize_page_url(f"{BASE}/blog/?p=3") == f"{BASE}/blog/?p=3"


def test_parse_sitemap_handles_both_document_kinds():
    locs, is_index = parse_sitemap(urlset(f"{BASE}/blog/a/", f"{BASE}/blog/b/"))
    assert locs == [f"{BASE}/blog/a/", f"{BASE}/blog/b/"] and not is_index
    locs, is_index = parse_sitemap(index(f"{BASE}/blog/post-sitemap.xml"))
    assert locs == [f"{BASE}/blog/post-sitemap.xml"] and is_index


def test_sitemap_index_children_are_flattened():
    pages = {
        f"{BASE}/blog/sitemap_index.xml": index(f"{BASE}/blog/page-sitemap.xml", f"{BASE}/blog/post-sitemap.xml"),
        f"{BASE}/blog/page-sitemap.xml": urlset(f"{BASE}/blog/about/", f"{BASE}/blog/"),
        f"{BASE}/blog/post-sitemap.xml": urlset(f"{BASE}/blog/2020/01/news/", f"{BASE}/blog/about/"),
    }
    payload = asyncio.run(FakeDiscoverer(pages).discover(validate=False))

    assert payload.discovery.mode == "sitemap-index"
    assert payload.discovery.sitemap_url == f"{BASE}/blog/sitemap_index.xml"
    assert payload.urls == [f"{BASE}/blog/", f"{BASE}/blog/2020/01/news/", f"{BASE}/blog/about/"]
    assert payload.validation is None


def test_absent_and_malformed_sitemaps_fall_through_to_the_next_candidate():
    pages = {
        f"{BASE}/blog/sitemap.xml": "<urlset><url><loc>broken",
        f"{BASE}/sitemap.xml": urlset(f"{BASE}/blog/x", f"{BASE}/about/"),
    }
    discoverer = FakeDiscoverer(pages)
    payload = asyncio.run(discoverer.discover(validate=False))

    assert discoverer.fetched[:4] == discoverer.sitemap_candidates()
    assert payload.discovery.mode == "sitemap"
    assert payload.discovery.sitemap_url == f"{BASE}/sitemap.xml"
    assert payload.urls == [f"{BASE}/blog/x/"]


def test_urls_are_filtered_deduplicated_and_sorted():
    discoverer = FakeDiscoverer({})
    urls = discoverer.filter_urls(
        [
            f"{BASE}/blog/b/",
            f"{BASE}/blog/a",
            f"{BASE}/blog/a/#comments",
            "/blog/c/",
            f"{BASE}/blog/wp-content/uploads/2018/02/photo.jpg",
            f"{BASE}/blogger/",
            "https://elsewhere.example/blog/d/",
            f"{BASE}/shop/",
        ]
    )
    assert urls == [f"{BASE}/blog/a/", f"{BASE}/blog/b/", f"{BASE}/blog/c/"]


def test_crawl_follows_in_scope_links_only():
    pages = {
        f"{BASE}/blog/": '<a href="/blog/about/">About</a> <a href="2020/">Archive</a>'
        '<a href="https://elsewhere.example/blog/">x</a> <a href="/shop/">Shop</a>'
        '<a href="/blog/wp-content/uploads/a.pdf">pdf</a>',
        f"{BASE}/blog/about/": '<a href="/blog/">Home</a> <a href="/blog/about/#team">Team</a>',
        f"{BASE}/blog/2020/": "<p>archive</p>",
    }
    payload = asyncio.run(FakeDiscoverer(pages).discover(mode="crawl", validate=False))

    assert payload.discovery.mode == "crawl"
    assert payload.discovery.start_url == f"{BASE}/blog/"
    assert payload.urls == [f"{BASE}/blog/", f"{BASE}/blog/2020/", f"{BASE}/blog/about/"]


def test_crawl_stops_at_the_page_cap():
    pages = {f"{BASE}/blog/": "".join(f'<a href="/blog/p{i}/">p</a>' for i in range(10))}
    pages.update({f"{BASE}/blog/p{i}/": "<p/>" for i in range(10)})
    result = asyncio.run(FakeDiscoverer(pages, crawl_max=3).crawl())
    assert len(result.urls) == 3


def test_auto_mode_falls_back_to_crawl_without_sitemaps():
    pages = {f"{BASE}/blog/": '<a href="/blog/only/">x</a>', f"{BASE}/blog/only/": ""}
    payload = asyncio.run(FakeDiscoverer(pages).discover(validate=False))
    assert payload.discovery.mode == "crawl"
    assert payload.urls == [f"{BASE}/blog/", f"{BASE}/blog/only/"]


def test_validation_keeps_ok_urls_and_samples_failures():
    pages = {f"{BASE}/sitemap.xml": urlset(*(f"{BASE}/blog/p{i}/" for i in range(60)))}
    statuses = {f"{BASE}/blog/p{i}/": 404 for i in range(55)}
    payload = asyncio.run(FakeDiscoverer(pages, statuses=statuses).discover())

    assert payload.validation.total == 60
    assert payload.validation.ok == 5
    assert payload.validation.non_ok == 55
    assert len(payload.validation.non_ok_sample) == 50
    assert payload.urls == sorted(f"{BASE}/blog/p{i}/" for i in range(55, 60))
    assert payload.discovery.urls == payload.urls


def test_root_scope_crawls_outside_the_blog_prefix():
    pages = {
        f"{BASE}/": '<a href="/about/">About</a> <a href="/blog/">Blog</a> <a href="/work/x.html">W</a>',
        f"{BASE}/about/": "",
        f"{BASE}/work/x.html": "",
    }
    discoverer = FakeDiscoverer(pages, scope="root")
    payload = asyncio.run(discoverer.discover(validate=False))

    assert payload.scope == "root"
    assert payload.urls == [f"{BASE}/", f"{BASE}/about/", f"{BASE}/work/x.html"]
    with pytest.raises(ConfigError):
        asyncio.run(discoverer.discover(mode="sitemap"))


def test_nothing_found_is_an_error():
    with pytest.raises(MigrationError):
        asyncio.run(FakeDiscoverer({}).discover(validate=False))


def test_payload_is_written_with_camel_case_keys(tmp_path):
    pages = {f"{BASE}/blog/sitemap.xml": urlset(f"{BASE}/blog/a/")}
    payload = asyncio.run(FakeDiscoverer(pages).discover())
    out = write_payload(payload, str(tmp_path / "parity" / "legacy-urls.json"))

    with open(out, encoding="utf-8") as f:
        data = json.load(f)
    assert data["baseUrl"] == BASE
    assert data["blogPrefix"] == "/blog"
    assert data["discovery"]["sitemapUrl"] == f"{BASE}/blog/sitemap.xml"
    assert data["validation"]["nonOk"] == 0
    assert read_payload(out).urls == [f"{BASE}/blog/a/"]
