"""Blog header/footer/CSS fragments: stored setting first, static file second."""

from __future__ import annotations

import os
from typing import Dict, Optional, Tuple

from .content_store import ContentStore

# setting key -> fallback file relative to the public directory
FRAGMENTS: Dict[str, Tuple[str, str]] = {
    "header": ("blog.headerHtml", os.path.join("blog", "_fragments", "header.html")),
    "footer": ("blog.footerHtml", os.path.join("blog", "_fragments", "footer.html")),
    "inline_css": ("blog.inlineCss", os.path.join("blog", "wp-inline.css")),
}


def read_fragment(store: ContentStore, name: str, *, public_dir: str = "public") -> Optional[str]:
    """Return the ``name`` fragment, or ``None`` when neither source has it."""
    setting_key, fallback = FRAGMENTS[name]
    stored = store.get_setting_string(setting_key)
    if stored:
        return stored
    path = os.path.join(public_dir, fallback)
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def write_fragment(store: ContentStore, name: str, value: str) -> None:
    store.set_setting(FRAGMENTS[name][0], value)
