"""
Canonical form of WordPress upload URLs.

WordPress stores one original per upload and generates resized copies named
``photo-300x200.jpg`` (and ``photo-scaled.jpg`` for very large originals).
All of those collapse to ``photo.jpg`` here so that the media map keeps one
asset per original.

Known limitation: a filename whose stem genuinely ends in a ``-<w>x<h>``
segment (``banner-16x9.png``) is collapsed as well.
"""

from __future__ import annotations

import posixpath
import re
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".svg")

UPLOADS_MARKER = "/wp-content/uploads/"

# trailing run of size-variant / "-scaled" markers right before the extension
_VARIANT_SUFFIX_RE = re.compile(r"(?:-\d+x\d+|-scaled)+(?=\.[^./]+$)")


def is_image_path(path: str) -> bool:
    return path.lower().endswith(IMAGE_EXTENSIONS)


def canonicalize_upload_url(url: str) -> str:
    """
    Return the dedup key for an upload URL.

    Query string and fragment are always dropped.  For image paths the
    size-variant and ``-scaled`` suffixes are removed as well; other files
    (video, PDF, ...) keep their names because WordPress never resizes them.
    """
    parts = urlsplit(url)
    path = parts.path
    if is_image_path(path):
        head, filename = posixpath.split(path)
        filename = _VARIANT_SUFFIX_RE.sub("", filename)
        path = posixpath.join(head, filename) if head else filename
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def is_variant_url(url: str) -> bool:
    """True when ``url`` is not already in canonical form."""
    return canonicalize_upload_url(url) != url


def upload_relative_path(url: str) -> Optional[str]:
    """``wp-content/uploads/...`` part of an upload URL, or ``None``."""
    path = urlsplit(url).path
    idx = path.find(UPLOADS_MARKER)
    if idx == -1:
        return None
    return path[idx + 1:]
