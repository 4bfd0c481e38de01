"""
duckdb backed store for content items, media assets and site settings.

Every write is keyed by natural identity: content items by ``path``, media
assets by ``(source_url, provider)`` and settings by ``key``.  Running the
same import twice therefore converges on the same rows instead of adding
duplicates.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import duckdb
import pandas as pd

from ..models.content import (
    ContentBlock,
    ContentItem,
    ContentStatus,
    ContentType,
    HtmlBlock,
    MediaAsset,
    decode_blocks,
    encode_blocks,
)
from ..utils.errors import StorageError

logger = logging.getLogger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS content_items (
        id VARCHAR PRIMARY KEY,
        type VARCHAR NOT NULL,
        path VARCHAR NOT NULL UNIQUE,
        title VARCHAR NOT NULL,
        status VARCHAR NOT NULL,
        content VARCHAR NOT NULL,
        legacy_wp_id BIGINT,
        legacy_body_class VARCHAR,
        seo_title VARCHAR,
        seo_desc VARCHAR,
        published_at TIMESTAMP,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS media_assets (
        id VARCHAR PRIMARY KEY,
        source_url VARCHAR NOT NULL,
        provider VARCHAR NOT NULL,
        object_key VARCHAR,
        url VARCHAR NOT NULL,
        filename VARCHAR NOT NULL,
        mime_type VARCHAR,
        bytes BIGINT,
        created_at TIMESTAMP NOT NULL,
        UNIQUE (source_url, provider)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS site_settings (
        key VARCHAR PRIMARY KEY,
        value VARCHAR,
        updated_at TIMESTAMP NOT NULL
    )
    """,
]

_CONTENT_FIELDS = (
    "type",
    "title",
    "status",
    "content",
    "legacy_wp_id",
    "legacy_body_class",
    "seo_title",
    "seo_desc",
)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_path(value: str) -> str:
    """Strip leading/trailing slashes; ``"/"`` and ``""`` are the home page."""
    trimmed = (value or "").strip()
    if trimmed == "/":
        return ""
    return trimmed.strip("/")


class ContentStore:
    """Content, media and settings persistence on a single duckdb connection."""

    def __init__(self, path: str = os.path.join("data", "migration.duckdb")) -> None:
        if path != ":memory:":
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self.path = path
        self.con = duckdb.connect(database=path, read_only=False)
        for statement in SCHEMA:
            self.con.execute(statement)

    def close(self) -> None:
        self.con.close()

    def __enter__(self) -> "ContentStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _rows(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        cur = self.con.execute(sql, params or [])
        columns = [col[0] for col in cur.description]
        return [dict(zip(columns, row)) for row in cur.fetchall()]

    # ------------------------------------------------------------------
    # Content items
    # ------------------------------------------------------------------

    @staticmethod
    def _to_item(row: Dict[str, Any]) -> ContentItem:
        row = dict(row)
        row["content"] = decode_blocks(row["content"])
        return ContentItem.model_validate(row)

    def get(self, item_id: str) -> Optional[ContentItem]:
        rows = self._rows("SELECT * FROM content_items WHERE id = ?", [item_id])
        return self._to_item(rows[0]) if rows else None

    def _reload(self, item_id: str) -> ContentItem:
        item = self.get(item_id)
        if item is None:
            raise StorageError(f"Content item {item_id} vanished after write")
        return item

    def get_by_path(self, path: str, *, include_draft: bool = False) -> Optional[ContentItem]:
        """Return the item at ``path``; drafts only when ``include_draft``."""
        rows = self._rows("SELECT * FROM content_items WHERE path = ?", [normalize_path(path)])
        if not rows:
            return None
        item = self._to_item(rows[0])
        if item.status == ContentStatus.PUBLISHED or include_draft:
            return item
        return None

    def list_items(self) -> List[ContentItem]:
        """All items, most recently updated first."""
        rows = self._rows("SELECT * FROM content_items ORDER BY updated_at DESC, path")
        return [self._to_item(row) for row in rows]

    def upsert(self, path: str, fields: Dict[str, Any]) -> Tuple[ContentItem, bool]:
        """
        Create or update the item at ``path``.

        ``published_at`` is stamped when the item becomes PUBLISHED, kept
        while it stays published and cleared when it goes back to DRAFT.

        :return: The stored item and whether it was newly created.
        """
        path = normalize_path(path)
        unknown = set(fields) - set(_CONTENT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown content fields: {sorted(unknown)}")

        values = dict(fields)
        if "type" in values:
            values["type"] = ContentType(values["type"]).value
        if "status" in values:
            values["status"] = ContentStatus(values["status"]).value
        if "content" in values:
            values["content"] = encode_blocks(list(values["content"]))

        existing = self._rows(
            "SELECT id, status, published_at FROM content_items WHERE path = ?", [path]
        )
        now = _now()

        if existing:
            row = existing[0]
            status = values.get("status", row["status"])
            if status == ContentStatus.PUBLISHED.value:
                published_at = row["published_at"] if row["status"] == status and row["published_at"] else now
            else:
                published_at = None
            values["published_at"] = published_at
            values["updated_at"] = now
            assignments = ", ".join(f"{name} = ?" for name in values)
            self.con.execute(
                f"UPDATE content_items SET {assignments} WHERE id = ?",
                [*values.values(), row["id"]],
            )
            return self._reload(row["id"]), False

        status = values.get("status", ContentStatus.DRAFT.value)
        record = {
            "id": str(uuid.uuid4()),
            "type": values.get("type", ContentType.PAGE.value),
            "path": path,
            "title": values.get("title", ""),
            "status": status,
            "content": values.get("content", "[]"),
            "legacy_wp_id": values.get("legacy_wp_id"),
            "legacy_body_class": values.get("legacy_body_class"),
            "seo_title": values.get("seo_title"),
            "seo_desc": values.get("seo_desc"),
            "published_at": now if status == ContentStatus.PUBLISHED.value else None,
            "created_at": now,
            "updated_at": now,
        }
        columns = ", ".join(record)
        placeholders = ", ".join("?" for _ in record)
        self.con.execute(
            f"INSERT INTO content_items ({columns}) VALUES ({placeholders})", list(record.values())
        )
        return self._reload(record["id"]), True

    def create_untitled(self) -> ContentItem:
        """New empty draft page at ``untitled-<suffix>``."""
        blocks: List[ContentBlock] = [HtmlBlock(html="")]
        item, _ = self.upsert(
            f"untitled-{uuid.uuid4().hex[:8]}",
            {"type": ContentType.PAGE, "title": "Untitled", "status": ContentStatus.DRAFT, "content": blocks},
        )
        return item

    def delete(self, item_id: str) -> bool:
        found = self._rows("SELECT id FROM content_items WHERE id = ?", [item_id])
        if not found:
            return False
        self.con.execute("DELETE FROM content_items WHERE id = ?", [item_id])
        return True

    # ------------------------------------------------------------------
    # Media assets
    # ------------------------------------------------------------------

    @staticmethod
    def _to_asset(row: Dict[str, Any]) -> MediaAsset:
        row = dict(row)
        row["key"] = row.pop("object_key")
        return MediaAsset.model_validate(row)

    def find_media(self, source_url: str, provider: str) -> Optional[MediaAsset]:
        rows = self._rows(
            "SELECT * FROM media_assets WHERE source_url = ? AND provider = ?", [source_url, provider]
        )
        return self._to_asset(rows[0]) if rows else None

    def save_media(
        self,
        *,
        source_url: str,
        provider: str,
        url: str,
        filename: str,
        key: Optional[str] = None,
        mime_type: Optional[str] = None,
        size: Optional[int] = None,
    ) -> MediaAsset:
        """Insert or refresh the asset row for ``(source_url, provider)``."""
        existing = self.find_media(source_url, provider)
        if existing:
            self.con.execute(
                "UPDATE media_assets SET url = ?, object_key = ?, filename = ?, mime_type = ?, bytes = ? "
                "WHERE id = ?",
                [url, key, filename, mime_type, size, existing.id],
            )
        else:
            self.con.execute(
                "INSERT INTO media_assets (id, source_url, provider, object_key, url, filename, mime_type, bytes, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [str(uuid.uuid4()), source_url, provider, key, url, filename, mime_type, size, _now()],
            )
        asset = self.find_media(source_url, provider)
        if asset is None:
            raise StorageError(f"Media row for {source_url} ({provider}) vanished after write")
        return asset

    def list_media(self, provider: Optional[str] = None) -> List[MediaAsset]:
        """Assets ordered largest first, then newest first."""
        sql = "SELECT * FROM media_assets"
        params: List[Any] = []
        if provider:
            sql += " WHERE provider = ?"
            params.append(provider)
        sql += " ORDER BY bytes DESC NULLS LAST, created_at DESC"
        return [self._to_asset(row) for row in self._rows(sql, params)]

    def delete_media(self, asset_id: str) -> None:
        self.con.execute("DELETE FROM media_assets WHERE id = ?", [asset_id])

    def delete_all_media(self, provider: Optional[str] = None) -> int:
        """Bulk reset of the media map; returns the number of rows removed."""
        where, params = ("WHERE provider = ?", [provider]) if provider else ("", [])
        count = self.con.execute(f"SELECT count(*) FROM media_assets {where}", params).fetchone()[0]
        self.con.execute(f"DELETE FROM media_assets {where}", params)
        return int(count)

    def media_frame(self) -> pd.DataFrame:
        return self.con.execute(
            "SELECT provider, filename, mime_type, bytes, source_url FROM media_assets"
        ).df()

    # ------------------------------------------------------------------
    # Site settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> Any:
        rows = self._rows("SELECT value FROM site_settings WHERE key = ?", [key])
        if not rows or rows[0]["value"] is None:
            return None
        return json.loads(rows[0]["value"])

    def get_setting_string(self, key: str) -> Optional[str]:
        value = self.get_setting(key)
        return value if isinstance(value, str) else None

    def set_setting(self, key: str, value: Any) -> None:
        encoded = json.dumps(value, ensure_ascii=False)
        if self._rows("SELECT key FROM site_settings WHERE key = ?", [key]):
            self.con.execute(
                "UPDATE site_settings SET value = ?, updated_at = ? WHERE key = ?", [encoded, _now(), key]
            )
        else:
            self.con.execute(
                "INSERT INTO site_settings (key, value, updated_at) VALUES (?, ?, ?)", [key, encoded, _now()]
            )
