"""
Writers of the migration pipeline.

This subpackage moves legacy media into object storage (blob or S3
backends behind :class:`~site_migrator.migrators.storage.StorageBackend`),
imports WordPress content into the content store and prunes stored media
when space runs out.  Retries go through :mod:`site_migrator.utils.retry`.
"""

from .blob_pruner import PruneResult, prune, select_candidates
from .blob_storage import BlobStorage
from .content_importer import ContentImporter, backfill_body_classes
from .media_resolver import MediaResolver, Resolution
from .s3_storage import S3Storage
from .storage import Download, StorageBackend, StoredObject, http_fetch

__all__ = [
    "PruneResult",
    "prune",
    "select_candidates",
    "BlobStorage",
    "ContentImporter",
    "backfill_body_classes",
    "MediaResolver",
    "Resolution",
    "S3Storage",
    "Download",
    "StorageBackend",
    "StoredObject",
    "http_fetch",
]
