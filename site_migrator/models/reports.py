"""Point-in-time artifacts written by discovery and import runs."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ValidationResult(_CamelModel):
    url: str
    status: int
    ok: bool
    error: Optional[str] = None


class ValidationSummary(_CamelModel):
    total: int
    ok: int
    non_ok: int = Field(..., alias="nonOk")
    non_ok_sample: List[ValidationResult] = Field(default_factory=list, alias="nonOkSample")


class DiscoveryResult(_CamelModel):
    mode: str
    urls: List[str] = Field(default_factory=list)
    sitemap_url: Optional[str] = Field(None, alias="sitemapUrl")
    start_url: Optional[str] = Field(None, alias="startUrl")


class DiscoveryPayload(_CamelModel):
    generated_at: str = Field(..., alias="generatedAt")
    base_url: str = Field(..., alias="baseUrl")
    blog_prefix: str = Field("/blog", alias="blogPrefix")
    scope: str = "blog"
    discovery: DiscoveryResult
    validation: Optional[ValidationSummary] = None
    urls: List[str] = Field(default_factory=list)


class MediaMapEntry(_CamelModel):
    source_url: str = Field(..., alias="sourceUrl")
    resolved_url: str = Field(..., alias="resolvedUrl")
    used_by: List[str] = Field(default_factory=list, alias="usedBy")


class ImportSummary(_CamelModel):
    wp_base_url: str = Field(..., alias="wpBaseUrl")
    media_mode: str = Field(..., alias="mediaMode")
    pages_fetched: int = Field(0, alias="pagesFetched")
    posts_fetched: int = Field(0, alias="postsFetched")
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    uploads_created: int = Field(0, alias="uploadsCreated")
    uploads_rewritten: int = Field(0, alias="uploadsRewrittenInHtml")
    home_wp_page_id: Optional[int] = Field(None, alias="homeWpPageId")

    def counts(self) -> Dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
        }
