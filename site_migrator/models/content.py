from __future__ import annotations

import enum
import json
from datetime import datetime
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ContentType(str, enum.Enum):
    PAGE = "PAGE"
    POST = "POST"


class ContentStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class HtmlBlock(BaseModel):
    type: Literal["html"] = "html"
    html: str = ""


class ImageBlock(BaseModel):
    type: Literal["image"] = "image"
    src: str
    alt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


ContentBlock = Union[HtmlBlock, ImageBlock]

_BLOCKS = TypeAdapter(List[Union[HtmlBlock, ImageBlock]])


def decode_block(raw: Any) -> Optional[ContentBlock]:
    """
    Decode one stored block.

    Older rows carry no ``type`` tag; the variant is then inferred from the
    fields present (``html`` means an HTML block, ``src`` an image block).
    Anything else is dropped.
    """
    if not isinstance(raw, dict):
        return None
    tag = raw.get("type")
    if tag is None:
        if "html" in raw:
            tag = "html"
        elif "src" in raw:
            tag = "image"
    if tag == "html":
        return HtmlBlock(html=str(raw.get("html") or ""))
    if tag == "image" and raw.get("src"):
        return ImageBlock.model_validate({**raw, "type": "image"})
    return None


def decode_blocks(raw: Any) -> List[ContentBlock]:
    """Decode a stored block list (JSON text or parsed list)."""
    if isinstance(raw, (str, bytes)):
        raw = json.loads(raw or "[]")
    if not isinstance(raw, list):
        return []
    return [block for block in (decode_block(item) for item in raw) if block is not None]


def encode_blocks(blocks: List[ContentBlock]) -> str:
    return _BLOCKS.dump_json(blocks, exclude_none=True).decode("utf-8")


class ContentItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: ContentType = ContentType.PAGE
    path: str
    title: str = ""
    status: ContentStatus = ContentStatus.DRAFT
    content: List[ContentBlock] = Field(default_factory=list)
    legacy_wp_id: Optional[int] = Field(None, alias="legacyWpId")
    legacy_body_class: Optional[str] = Field(None, alias="legacyBodyClass")
    seo_title: Optional[str] = Field(None, alias="seoTitle")
    seo_desc: Optional[str] = Field(None, alias="seoDesc")
    published_at: Optional[datetime] = Field(None, alias="publishedAt")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class MediaAsset(BaseModel):
    """One migrated binary resource; ``source_url`` is always canonical."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    source_url: str = Field(..., alias="sourceUrl")
    provider: str
    key: Optional[str] = None
    url: str
    filename: str
    mime_type: Optional[str] = Field(None, alias="mimeType")
    bytes: Optional[int] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")
