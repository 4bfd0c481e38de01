"""
Configuration for the migration pipeline.

Configuration is read from an optional JSON file (``config/migration_config.json``
unless ``MIGRATION_CONFIG`` points elsewhere) and completed from environment
variables for every key the file leaves unset.  The merged dictionary is
validated into a :class:`MigrationConfig`.

Sections
--------
``legacy``     legacy origin, blog prefix and WordPress base URL
``database``   duckdb file holding content items, media assets and settings
``media``      storage backend selection and credentials
``discovery``  legacy URL discovery and validation
``importer``   WordPress import options
``prune``      storage reclaim target and mode
``parity``     screenshot comparison settings

:func:`get_config` loads once per process; later calls return the same
object.
"""

from __future__ import annotations

import functools
import json
import os
import re
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .utils.errors import ConfigError

CONFIG_FILE = os.path.join("config", "migration_config.json")

VIEWPORTS: Dict[str, Dict[str, int]] = {
    "desktop": {"width": 1440, "height": 900},
    "tablet": {"width": 834, "height": 1112},
    "mobile": {"width": 390, "height": 844},
}

# section -> key -> environment variable
ENV_KEYS: Dict[str, Dict[str, str]] = {
    "legacy": {
        "base_url": "LEGACY_BASE_URL",
        "blog_prefix": "LEGACY_BLOG_PREFIX",
        "wp_base_url": "WP_BASE_URL",
    },
    "database": {"path": "DATABASE_PATH"},
    "media": {
        "mode": "MEDIA_MODE",
        "blob_token": "BLOB_READ_WRITE_TOKEN",
        "blob_api_url": "BLOB_API_URL",
        "s3_bucket": "S3_BUCKET",
        "s3_region": "AWS_REGION",
        "s3_endpoint_url": "S3_ENDPOINT_URL",
        "key_prefix": "S3_KEY_PREFIX",
        "public_base_url": "MEDIA_PUBLIC_BASE_URL",
        "concurrency": "MEDIA_CONCURRENCY",
    },
    "discovery": {
        "mode": "URL_DISCOVERY_MODE",
        "scope": "URL_DISCOVERY_SCOPE",
        "validate_urls": "URL_VALIDATE",
        "validate_concurrency": "URL_VALIDATE_CONCURRENCY",
        "crawl_max": "URL_CRAWL_MAX",
        "out_file": "URLS_OUT_FILE",
    },
    "importer": {
        "import_body_class": "IMPORT_BODY_CLASS",
        "body_class_concurrency": "BODYCLASS_CONCURRENCY",
    },
    "prune": {
        "target_free_bytes": "BLOB_PRUNE_TARGET_FREE",
        "mode": "BLOB_PRUNE_MODE",
    },
    "parity": {
        "new_base_url": "NEW_BASE_URL",
        "urls_file": "PARITY_URLS_FILE",
        "viewports": "PARITY_VIEWPORTS",
        "max_diff_pixel_ratio": "PARITY_MAX_DIFF_PIXEL_RATIO",
        "pixelmatch_threshold": "PARITY_PIXELMATCH_THRESHOLD",
        "settle_ms": "PARITY_SETTLE_MS",
        "mask_media": "PARITY_MASK_MEDIA",
        "workers": "PARITY_WORKERS",
        "url_allow": "PARITY_URL_ALLOW",
        "url_deny": "PARITY_URL_DENY",
        "limit": "PARITY_URL_LIMIT",
        "artifacts_dir": "PARITY_ARTIFACTS_DIR",
        "style_selectors": "PARITY_STYLE_SELECTORS",
        "style_props": "PARITY_STYLE_PROPS",
        "style_out_dir": "PARITY_STYLE_OUT_DIR",
    },
}

STYLE_SELECTORS = [
    "body", "#page", "#masthead", "#site-navigation", "#main",
    "#content", ".inner-wrap", ".entry-title", ".entry-content",
]
STYLE_PROPS = [
    "display", "position",
    "fontFamily", "fontSize", "fontWeight", "fontStyle", "lineHeight", "letterSpacing", "textTransform",
    "color", "backgroundColor", "textAlign", "maxWidth", "width",
    "marginTop", "marginRight", "marginBottom", "marginLeft",
    "paddingTop", "paddingRight", "paddingBottom", "paddingLeft",
]

_BYTES_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*(kb|mb|gb)?$", re.IGNORECASE)
_UNITS = {"": 1, "kb": 1024, "mb": 1024 ** 2, "gb": 1024 ** 3}


def parse_bytes(value: Any) -> int:
    """Parse ``64mb``, ``1.5gb``, ``512kb`` or a plain byte count."""
    if isinstance(value, (int, float)):
        return int(value)
    raw = str(value or "").strip()
    if not raw:
        return 0
    match = _BYTES_RE.match(raw)
    if not match:
        raise ValueError(f"Unrecognized byte size: {raw!r}")
    return round(float(match.group(1)) * _UNITS[(match.group(2) or "").lower()])


def normalize_base_url(raw: str) -> str:
    """Reduce a URL to ``scheme://host[:port]`` without a trailing slash."""
    parts = urlsplit(raw.strip())
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Not an absolute URL: {raw!r}")
    return f"{parts.scheme}://{parts.netloc}"


def normalize_prefix(raw: Optional[str]) -> str:
    """Force a path prefix to ``/segment`` form (no trailing slash)."""
    if not raw:
        return "/blog"
    prefix = raw.strip()
    if not prefix.startswith("/"):
        prefix = "/" + prefix
    return prefix.rstrip("/") or "/blog"


class LegacyConfig(BaseModel):
    base_url: str = "https://carlagannis.com"
    blog_prefix: str = "/blog"
    wp_base_url: str = ""

    @field_validator("base_url")
    @classmethod
    def _base(cls, v: str) -> str:
        return normalize_base_url(v)

    @field_validator("blog_prefix")
    @classmethod
    def _prefix(cls, v: str) -> str:
        return normalize_prefix(v)

    @model_validator(mode="after")
    def _derive_wp_base(self) -> "LegacyConfig":
        if not self.wp_base_url:
            self.wp_base_url = f"{self.base_url}{self.blog_prefix}"
        self.wp_base_url = self.wp_base_url.rstrip("/")
        return self


class DatabaseConfig(BaseModel):
    path: str = os.path.join("data", "migration.duckdb")


class MediaConfig(BaseModel):
    mode: str = ""
    blob_token: str = ""
    blob_api_url: str = "https://blob.vercel-storage.com"
    s3_bucket: str = ""
    s3_region: str = ""
    s3_endpoint_url: Optional[str] = None
    key_prefix: str = "blog"
    public_base_url: str = ""
    part_size: int = 8 * 1024 * 1024
    upload_concurrency: int = 4
    concurrency: int = Field(default=4, ge=1)

    @field_validator("mode")
    @classmethod
    def _mode(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in ("", "blob", "s3", "none"):
            raise ValueError("media mode must be blob, s3 or none")
        return v

    @field_validator("key_prefix")
    @classmethod
    def _key_prefix(cls, v: str) -> str:
        return (v or "blog").strip("/")

    @field_validator("public_base_url")
    @classmethod
    def _public_base(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")

    @property
    def resolved_mode(self) -> str:
        """Explicit mode, else ``blob`` when a blob token is set, else ``none``."""
        if self.mode:
            return self.mode
        return "blob" if self.blob_token else "none"


class DiscoveryConfig(BaseModel):
    mode: str = "auto"
    scope: str = "blog"
    validate_urls: bool = True
    validate_concurrency: int = Field(default=6, ge=1)
    crawl_max: int = Field(default=4000, ge=1)
    out_file: str = os.path.join("testes", "parity", "legacy-urls.json")

    @field_validator("mode")
    @classmethod
    def _mode(cls, v: str) -> str:
        v = (v or "auto").strip().lower()
        if v not in ("sitemap", "crawl", "auto"):
            raise ValueError("discovery mode must be sitemap, crawl or auto")
        return v

    @field_validator("scope")
    @classmethod
    def _scope(cls, v: str) -> str:
        v = (v or "blog").strip().lower()
        if v not in ("blog", "root"):
            raise ValueError("discovery scope must be blog or root")
        return v


class ImporterConfig(BaseModel):
    import_body_class: bool = True
    body_class_concurrency: int = Field(default=5, ge=1)
    report_dir: str = "reports"


class PruneConfig(BaseModel):
    target_free_bytes: int = 64 * 1024 * 1024
    mode: str = "videos"

    @field_validator("target_free_bytes", mode="before")
    @classmethod
    def _bytes(cls, v: Any) -> int:
        return parse_bytes(v)

    @field_validator("mode")
    @classmethod
    def _mode(cls, v: str) -> str:
        v = (v or "videos").strip().lower()
        if v not in ("videos", "variants", "largest"):
            raise ValueError("prune mode must be videos, variants or largest")
        return v


class ParityConfig(BaseModel):
    new_base_url: str = "http://127.0.0.1:3100"
    urls_file: str = os.path.join("testes", "parity", "legacy-urls.json")
    viewports: List[str] = Field(default_factory=lambda: list(VIEWPORTS))
    max_diff_pixel_ratio: float = Field(default=0.005, ge=0.0, le=1.0)
    pixelmatch_threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    settle_ms: int = 250
    mask_media: bool = True
    workers: int = Field(default=4, ge=1)
    url_allow: Optional[str] = None
    url_deny: Optional[str] = None
    limit: Optional[int] = None
    artifacts_dir: str = os.path.join("reports", "parity")
    root_selector: str = "#page"
    image_wait_ms: int = 5000
    timeout_ms: int = 60_000
    style_selectors: List[str] = Field(default_factory=lambda: list(STYLE_SELECTORS))
    style_props: List[str] = Field(default_factory=lambda: list(STYLE_PROPS))
    style_out_dir: str = os.path.join("reports", "parity-style")

    @field_validator("new_base_url")
    @classmethod
    def _base(cls, v: str) -> str:
        return normalize_base_url(v)

    @field_validator("viewports", mode="before")
    @classmethod
    def _viewports(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [part.strip().lower() for part in v.split(",") if part.strip()]
        unknown = [name for name in v if name not in VIEWPORTS]
        if unknown:
            raise ValueError(f"unknown viewports: {', '.join(unknown)}")
        return v

    @field_validator("style_selectors", "style_props", mode="before")
    @classmethod
    def _comma_list(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.split(",")
        return [item.strip() for item in v if item and item.strip()]

    @field_validator("url_allow", "url_deny", mode="before")
    @classmethod
    def _blank_is_none(cls, v: Any) -> Any:
        return v or None

    @field_validator("limit", mode="before")
    @classmethod
    def _limit(cls, v: Any) -> Any:
        return None if v in (None, "") else v


class MigrationConfig(BaseModel):
    legacy: LegacyConfig = Field(default_factory=LegacyConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    importer: ImporterConfig = Field(default_factory=ImporterConfig)
    prune: PruneConfig = Field(default_factory=PruneConfig)
    parity: ParityConfig = Field(default_factory=ParityConfig)


def load_config(
    config_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> MigrationConfig:
    """
    Build a :class:`MigrationConfig` from a JSON file plus environment.

    Values present in the file win; environment variables only fill keys the
    file leaves unset.

    :raises ConfigError: if the file is unreadable or a value is invalid.
    """
    env = os.environ if environ is None else environ
    path = config_file or env.get("MIGRATION_CONFIG") or CONFIG_FILE

    config: Dict[str, Any] = {}
    if os.path.exists(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Could not read {path}: {exc}") from exc

    for section, keys in ENV_KEYS.items():
        config.setdefault(section, {})
        for key, env_name in keys.items():
            value = env.get(env_name)
            if value is not None and value != "":
                config[section].setdefault(key, value)

    try:
        return MigrationConfig.model_validate(config)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


@functools.lru_cache(maxsize=1)
def get_config() -> MigrationConfig:
    """Process-wide configuration, loaded on first access."""
    return load_config()
