"""
Rewriting of WordPress upload references inside rendered HTML.

Only attribute values are touched: ``src="..."``, ``href="..."`` and each
candidate of ``srcset="..."``.  A reference is replaced only when the
resolver returns a new URL; everything else stays byte-for-byte as authored
so that a partially migrated page still works against the legacy uploads.

Resolution is memoized per document on the canonical URL, so a document that
references ``photo-150x150.jpg`` and ``photo-1024x768.jpg`` three times in
total calls the resolver once.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from .canonical import UPLOADS_MARKER, canonicalize_upload_url

ResolveFn = Callable[[str], Awaitable[Optional[str]]]

_ATTR_RE = re.compile(r"\b(src|href)=([\"'])([^\"']+)\2", re.IGNORECASE)
_SRCSET_RE = re.compile(r"\bsrcset=([\"'])([^\"']+)\1", re.IGNORECASE)


@dataclass
class RewriteResult:
    html: str
    # (canonical source URL, resolved URL) pairs applied to the document
    mapped: List[Tuple[str, str]] = field(default_factory=list)


def normalize_candidate_url(candidate: str, wp_base_url: str) -> str:
    """Make a protocol-relative or root-relative upload reference absolute."""
    if candidate.startswith("//"):
        return f"https:{candidate}"
    base = urlsplit(wp_base_url)
    origin = f"{base.scheme}://{base.netloc}"
    prefix = base.path.rstrip("/")
    if prefix and candidate.startswith(prefix + "/"):
        return f"{origin}{candidate}"
    if candidate.startswith("/"):
        return f"{wp_base_url.rstrip('/')}{candidate}"
    return candidate


def _split_srcset(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


async def rewrite_uploads_in_html(
    html: str,
    resolve: ResolveFn,
    *,
    wp_base_url: str,
    concurrency: int = 4,
) -> RewriteResult:
    """
    Replace upload references in ``html`` with the URLs ``resolve`` returns.

    :param html: Rendered HTML fragment.
    :param resolve: Coroutine taking a canonical upload URL and returning its
        new URL, or ``None`` to leave the reference untouched.
    :param wp_base_url: Legacy WordPress base URL used to absolutize
        relative references.
    :param concurrency: Maximum number of resolutions in flight.
    :return: The rewritten HTML and the applied mappings.
    """

    def canonical_key(raw: str) -> Optional[str]:
        if "wp-content/uploads" not in raw:
            return None
        absolute = normalize_candidate_url(raw, wp_base_url)
        if UPLOADS_MARKER not in absolute:
            return None
        return canonicalize_upload_url(absolute)

    # first pass: every distinct canonical upload URL, in document order
    keys: Dict[str, None] = {}
    for match in _ATTR_RE.finditer(html):
        key = canonical_key(match.group(3))
        if key:
            keys.setdefault(key)
    for match in _SRCSET_RE.finditer(html):
        for part in _split_srcset(match.group(2)):
            key = canonical_key(part.split()[0])
            if key:
                keys.setdefault(key)

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def resolve_once(key: str) -> Optional[str]:
        async with semaphore:
            return await resolve(key)

    outcomes = await asyncio.gather(*(resolve_once(key) for key in keys))
    resolved: Dict[str, Optional[str]] = dict(zip(keys, outcomes))

    def lookup(raw: str) -> Optional[str]:
        key = canonical_key(raw)
        return resolved.get(key) if key else None

    def replace_attr(match: "re.Match[str]") -> str:
        mapped = lookup(match.group(3))
        if not mapped:
            return match.group(0)
        return f"{match.group(1)}={match.group(2)}{mapped}{match.group(2)}"

    def replace_srcset(match: "re.Match[str]") -> str:
        quote, value = match.group(1), match.group(2)
        parts: List[str] = []
        changed = False
        for part in _split_srcset(value):
            url, *descriptor = part.split()
            mapped = lookup(url)
            if not mapped:
                parts.append(part)
                continue
            changed = True
            parts.append(" ".join([mapped, *descriptor]))
        if not changed:
            return match.group(0)
        return f"srcset={quote}{', '.join(parts)}{quote}"

    out = _ATTR_RE.sub(replace_attr, html)
    out = _SRCSET_RE.sub(replace_srcset, out)
    mapped = [(key, url) for key, url in resolved.items() if url]
    return RewriteResult(html=out, mapped=mapped)
