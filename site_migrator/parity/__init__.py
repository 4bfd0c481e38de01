"""
Screenshot comparison of legacy and migrated pages.

:mod:`site_migrator.parity.image_diff` pads and diffs two captures;
:mod:`site_migrator.parity.runner` drives the browser over the URLs of a
discovery payload and :mod:`site_migrator.parity.style_report` records
where the computed styles of the two sites part ways.
"""

from .image_diff import DiffResult, compare_images, diff_pngs, pad_to
from .runner import ParityCase, ParityOutcome, ParityRunner, build_cases, select_urls
from .style_report import StyleReporter, diff_snapshots, diff_values

__all__ = [
    "DiffResult",
    "compare_images",
    "diff_pngs",
    "pad_to",
    "ParityCase",
    "ParityOutcome",
    "ParityRunner",
    "build_cases",
    "select_urls",
    "StyleReporter",
    "diff_snapshots",
    "diff_values",
]
