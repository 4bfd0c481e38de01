"""
Exceptions and structured run reports for the migration pipeline.

The :mod:`site_migrator.utils.errors` module centralizes two things:

* the exception hierarchy raised by the pipeline (all rooted at
  :class:`MigrationError`), and
* the writing of per-item log entries for both failed and successful
  operations.  Each entry is appended to a JSON Lines file under
  ``reports/migration`` so that the information can be reviewed or parsed
  after a run.

``report_error``
    Record an error that occurred for a content item, URL or asset.  An
    optional exception can be supplied and will be serialized to the log.

``report_ok``
    Record a successful step.  Additional key/value information can be
    attached to the entry via the ``extra`` parameter.

The ``ERRORS`` dictionary maps error or event codes to human readable
messages.  Codes not present in the dictionary fall back to the code itself.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class MigrationError(Exception):
    """Base class for every error raised by the migration pipeline."""


class ConfigError(MigrationError):
    """Configuration is missing or invalid."""


class FetchError(MigrationError):
    """An HTTP fetch returned a non-success status."""

    def __init__(self, url: str, status: int, message: str = "") -> None:
        self.url = url
        self.status = status
        super().__init__(message or f"GET {url} -> {status}")


class StorageError(MigrationError):
    """An object storage backend rejected a write or delete."""


class RateLimitedError(StorageError):
    """The storage backend answered with a rate-limit response."""


# event code -> message, shared by report_error and report_ok
ERRORS: Dict[str, str] = {
    "MEDIA_FETCH": "Failed to download legacy media",
    "MEDIA_UPLOAD": "Failed to upload media to storage",
    "MEDIA_UPLOADED": "Media uploaded to storage",
    "CONTENT_SKIPPED": "Content item link is outside the blog prefix",
    "CONTENT_FAILED": "Failed to import content item",
    "CONTENT_UPSERTED": "Content item imported",
    "BODY_CLASS_FAILED": "Failed to backfill legacy body class",
    "BODY_CLASS_UPDATED": "Legacy body class updated",
    "PRUNE_DELETE": "Failed to delete media object",
    "PRUNED": "Media object deleted",
}

_REPORT_DIR = os.path.join("reports", "migration")
_ERROR_LOG = os.path.join(_REPORT_DIR, "errors.jsonl")
_OK_LOG = os.path.join(_REPORT_DIR, "success.jsonl")


def _write_jsonl(path: str, data: Dict[str, Any]) -> None:
    """Append ``data`` as a JSON object followed by a newline to ``path``."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False)
        f.write("\n")


def report_error(code: str, subject: str, exc: Optional[BaseException] = None) -> None:
    """Log an error event for ``subject``.

    Parameters
    ----------
    code:
        Event code; its :data:`ERRORS` message is written next to it.
    subject:
        What the error is about: a content path, a legacy URL or a media
        source URL.
    exc:
        The exception behind the failure, stored as ``error`` when given.
    """
    message = ERRORS.get(code, code)
    entry: Dict[str, Any] = {"code": code, "message": message, "subject": subject}
    if exc is not None:
        entry["error"] = str(exc)
    logger.error("%s - %s", message, subject)
    _write_jsonl(_ERROR_LOG, entry)


def report_ok(code: str, subject: str, extra: Optional[Dict[str, Any]] = None) -> None:
    """Log a successful event for ``subject``.

    ``extra`` is merged into the log entry when given.
    """
    message = ERRORS.get(code, code)
    entry: Dict[str, Any] = {"code": code, "message": message, "subject": subject}
    if extra:
        entry.update(extra)
    logger.debug("%s - %s", message, subject)
    _write_jsonl(_OK_LOG, entry)
