"""
Parsers and converters used by the migration pipeline.

This subpackage exposes ``canonicalize_upload_url`` from
:mod:`site_migrator.parsers.canonical` and ``rewrite_uploads_in_html`` from
:mod:`site_migrator.parsers.html_rewriter`.
"""

from .canonical import canonicalize_upload_url, is_variant_url, upload_relative_path
from .html_rewriter import RewriteResult, rewrite_uploads_in_html

__all__ = [
    "canonicalize_upload_url",
    "is_variant_url",
    "upload_relative_path",
    "RewriteResult",
    "rewrite_uploads_in_html",
]
