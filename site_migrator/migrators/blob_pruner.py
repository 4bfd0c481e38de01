"""
Reclaiming object-storage space.

Candidates are taken largest first (newest first among equal sizes) and
deleted one at a time until the freed byte count reaches the target.  A
delete is retried only while the backend reports rate limiting; any other
failure abandons that object and the loop moves on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from ..models.content import MediaAsset
from ..parsers.canonical import is_variant_url
from ..store.content_store import ContentStore
from ..utils.errors import report_error, report_ok
from ..utils.retry import RATE_LIMIT_POLICY, RetryPolicy, with_retries
from .storage import StorageBackend

logger = logging.getLogger(__name__)

PRUNE_MODES = ("videos", "variants", "largest")


def is_video(asset: MediaAsset) -> bool:
    return (asset.mime_type or "").startswith("video/") or asset.filename.lower().endswith(".mp4")


def select_candidates(assets: List[MediaAsset], mode: str) -> List[MediaAsset]:
    """Filter ``assets`` for ``mode`` and order them largest, then newest, first."""
    if mode not in PRUNE_MODES:
        raise ValueError(f"Unknown prune mode: {mode}")
    if mode == "videos":
        selected = [a for a in assets if is_video(a)]
    elif mode == "variants":
        selected = [a for a in assets if is_variant_url(a.source_url)]
    else:
        selected = list(assets)
    # two stable sorts: newest first, then largest first
    selected.sort(key=lambda a: a.created_at.timestamp() if a.created_at else 0.0, reverse=True)
    selected.sort(key=lambda a: a.bytes or 0, reverse=True)
    return selected


@dataclass
class PruneResult:
    freed: int = 0
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


async def prune(
    store: ContentStore,
    backend: StorageBackend,
    *,
    target_free_bytes: int,
    mode: str = "videos",
    policy: RetryPolicy = RATE_LIMIT_POLICY,
) -> PruneResult:
    """
    Delete stored media until ``target_free_bytes`` have been freed.

    :param store: Store holding the media map; rows are removed after their
        object is deleted.
    :param backend: Backend owning the objects.
    :param target_free_bytes: Stop once this many bytes are freed.
    :param mode: ``videos``, ``variants`` or ``largest``.
    :param policy: Retry policy for deletes.
    :return: Freed bytes and the URLs deleted or abandoned.
    """
    assets = store.list_media(backend.provider)
    total = sum(a.bytes or 0 for a in assets)
    logger.info("Media assets: %d, total bytes: %d", len(assets), total)
    logger.info("Prune mode: %s, target free: %d bytes", mode, target_free_bytes)

    result = PruneResult()
    for asset in select_candidates(assets, mode):
        if result.freed >= target_free_bytes:
            break
        if not asset.url:
            continue
        try:
            await with_retries(lambda: backend.delete(asset), policy, label=f"DELETE {asset.url}")
        except Exception as exc:
            result.failed.append(asset.url)
            report_error("PRUNE_DELETE", asset.url, exc)
            continue
        store.delete_media(asset.id)
        size = asset.bytes or 0
        result.freed += size
        result.deleted.append(asset.url)
        report_ok("PRUNED", asset.url, {"bytes": size, "sourceUrl": asset.source_url})
        logger.info("Deleted %s (%d bytes) %s source=%s", asset.filename, size, asset.mime_type or "", asset.source_url)

    logger.info("Freed bytes (approx, from the media table): %d", result.freed)
    return result
