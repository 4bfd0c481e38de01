"""
Data models shared by the pipeline.

Content items and media assets mirror the rows of the content store;
discovery payloads and media map entries are the JSON artifacts written by
discovery and import runs.
"""

from .content import (
    ContentBlock,
    ContentItem,
    ContentStatus,
    ContentType,
    HtmlBlock,
    ImageBlock,
    MediaAsset,
    decode_blocks,
    encode_blocks,
)
from .reports import DiscoveryPayload, DiscoveryResult, ImportSummary, MediaMapEntry, ValidationSummary

__all__ = [
    "ContentBlock",
    "ContentItem",
    "ContentStatus",
    "ContentType",
    "HtmlBlock",
    "ImageBlock",
    "MediaAsset",
    "decode_blocks",
    "encode_blocks",
    "DiscoveryPayload",
    "DiscoveryResult",
    "ImportSummary",
    "MediaMapEntry",
    "ValidationSummary",
]
