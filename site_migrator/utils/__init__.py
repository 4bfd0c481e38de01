"""
Utility helpers used by the migration pipeline.

This subpackage exposes structured run reports, logging setup, the shared
retry policy, the best-effort result type and the JSON audit writers.
"""

from .errors import ERRORS, MigrationError, report_error, report_ok
from .logs import configure_logging
from .reports import media_inventory, write_json_report, write_media_map
from .result import Ok, Result, Skipped
from .retry import DOWNLOAD_POLICY, RATE_LIMIT_POLICY, RetryPolicy, with_retries

__all__ = [
    "ERRORS",
    "MigrationError",
    "report_error",
    "report_ok",
    "configure_logging",
    "media_inventory",
    "write_json_report",
    "write_media_map",
    "Ok",
    "Result",
    "Skipped",
    "DOWNLOAD_POLICY",
    "RATE_LIMIT_POLICY",
    "RetryPolicy",
    "with_retries",
]
