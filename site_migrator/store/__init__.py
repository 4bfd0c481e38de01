"""
Persistence for imported content, the media map and site settings.
"""

from .content_store import ContentStore, normalize_path
from .fragments import read_fragment, write_fragment

__all__ = ["ContentStore", "normalize_path", "read_fragment", "write_fragment"]
