"""
JSON audit files written at the end of a run.

:func:`write_json_report` is the generic writer; :func:`write_media_map`
produces ``generated-media-map.json`` (which pages use which migrated
asset) and :func:`media_inventory` summarizes the media table per provider
and MIME family for the ``media-report`` command.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping

import pandas as pd

from ..models.reports import MediaMapEntry


def write_json_report(data: Any, *, out_path: str) -> str:
    """Write ``data`` as indented JSON to ``out_path``.

    Parameters
    ----------
    data:
        Any JSON serializable value.
    out_path:
        Location of the file.  The parent directory is created
        automatically.

    Returns
    -------
    str
        The path of the written file.
    """
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
        f.write("\n")
    return out_path


def write_media_map(
    mapping: Mapping[str, str],
    used_by: Mapping[str, Iterable[str]],
    *,
    wp_base_url: str,
    out_path: str = os.path.join("reports", "generated-media-map.json"),
) -> str:
    """Write the ``source URL -> stored URL`` map sorted by source URL.

    ``used_by`` lists the content paths referencing each source URL; the
    home page is written as ``(home)``.
    """
    items = [
        MediaMapEntry(
            source_url=source,
            resolved_url=mapping[source],
            used_by=sorted(path or "(home)" for path in used_by.get(source, ())),
        ).model_dump(by_alias=True)
        for source in sorted(mapping)
    ]
    payload: Dict[str, Any] = {
        "wpBaseUrl": wp_base_url,
        "createdAt": datetime.now(timezone.utc).isoformat(),
        "items": items,
    }
    return write_json_report(payload, out_path=out_path)


def media_inventory(frame: pd.DataFrame) -> pd.DataFrame:
    """Count and total bytes per provider and MIME family (``image``, ``video``...)."""
    if frame.empty:
        return pd.DataFrame(columns=["provider", "family", "count", "bytes"])
    data = frame.copy()
    data["family"] = data["mime_type"].fillna("unknown").str.split("/").str[0]
    data["bytes"] = data["bytes"].fillna(0).astype("int64")
    summary = (
        data.groupby(["provider", "family"], as_index=False)
        .agg(count=("filename", "size"), bytes=("bytes", "sum"))
        .sort_values(["provider", "bytes"], ascending=[True, False])
        .reset_index(drop=True)
    )
    return summary
