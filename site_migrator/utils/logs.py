"""Console and file logging for migration runs."""

from __future__ import annotations

import logging
import os

LOG_DIR = os.path.join("reports", "migration")
LOG_FILE = os.path.join(LOG_DIR, "migration.log")


def configure_logging(level: str = "INFO", *, log_file: str = LOG_FILE) -> None:
    """Send ``site_migrator`` log records to stdout and to ``log_file``.

    The console shows ``[LEVEL] message``; the file keeps ``LEVEL: message``
    lines appended across runs.
    """
    root = logging.getLogger("site_migrator")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    root.addHandler(console)

    os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root.addHandler(file_handler)
