"""
Readers for the legacy site.

This subpackage talks to the legacy WordPress install and its public pages:
:mod:`site_migrator.extractors.wordpress_api` fetches REST collections and
rendered HTML, :mod:`site_migrator.extractors.url_discovery` lists the page
URLs used by the parity suite.
"""

from .url_discovery import UrlDiscoverer, is_asset_path, normalize_page_url, read_payload, write_payload
from .wordpress_api import WordPressClient, extract_body_class, to_content_path

__all__ = [
    "UrlDiscoverer",
    "is_asset_path",
    "normalize_page_url",
    "read_payload",
    "write_payload",
    "WordPressClient",
    "extract_body_class",
    "to_content_path",
]
