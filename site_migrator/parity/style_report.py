"""
Computed-style comparison of legacy and new pages.

The screenshot diff says that a page differs; this report says where.  For
every parity case both pages are loaded side by side and stabilized the
same way as for screenshots, then each configured selector is looked up.
For the first element matching a selector the report keeps its bounding
rectangle and the configured computed-style properties.

One JSON file per case holds both snapshots and their differences;
``_summary.json`` lists every case with its number of differing selectors.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from playwright.async_api import Browser, Page, async_playwright

from ..config import VIEWPORTS, ParityConfig
from ..utils.reports import write_json_report
from .runner import STABILIZE_CSS, WAIT_FONTS_JS, ParityCase, safe_filename

logger = logging.getLogger(__name__)

RECT_KEYS = ("x", "y", "width", "height", "top", "left", "right", "bottom")

_EXTRACT_JS = """
({ selectors, styleProps, rectKeys }) => {
  const results = {};
  for (const sel of selectors) {
    const el = document.querySelector(sel);
    if (!el) { results[sel] = { present: false }; continue; }
    const cs = getComputedStyle(el);
    const box = el.getBoundingClientRect();
    const rect = {};
    for (const k of rectKeys) rect[k] = box[k];
    const style = {};
    for (const p of styleProps) style[p] = cs[p];
    results[sel] = { present: true, rect, style };
  }
  return results;
}
"""


def diff_values(legacy: Optional[Mapping[str, Any]], new: Optional[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Keys whose values differ, as ``{key: {"legacy": a, "new": b}}``."""
    legacy = legacy or {}
    new = new or {}
    out: Dict[str, Dict[str, Any]] = {}
    for key in sorted(set(legacy) | set(new)):
        if legacy.get(key) != new.get(key):
            out[key] = {"legacy": legacy.get(key), "new": new.get(key)}
    return out


def diff_snapshots(
    legacy: Mapping[str, Any], new: Mapping[str, Any], selectors: List[str]
) -> Dict[str, Any]:
    """
    Per-selector differences between two page snapshots.

    A selector present on one side only is reported as a ``present``
    mismatch; absent on both sides it is not reported.  Otherwise the rect
    and style differences are reported when either is non-empty.
    """
    diffs: Dict[str, Any] = {}
    for sel in selectors:
        a = legacy.get(sel) or {}
        b = new.get(sel) or {}
        a_present, b_present = bool(a.get("present")), bool(b.get("present"))
        if not (a_present and b_present):
            if a_present != b_present:
                diffs[sel] = {"present": {"legacy": a_present, "new": b_present}}
            continue
        rect = diff_values(a.get("rect"), b.get("rect"))
        style = diff_values(a.get("style"), b.get("style"))
        if rect or style:
            diffs[sel] = {"rect": rect, "style": style}
    return diffs


class StyleReporter:
    """Writes the computed-style report for a list of parity cases."""

    def __init__(self, config: ParityConfig) -> None:
        self.config = config
        self.out_dir = config.style_out_dir

    async def _open(self, page: Page, url: str) -> int:
        response = await page.goto(url, wait_until="domcontentloaded", timeout=self.config.timeout_ms)
        await page.add_style_tag(content=STABILIZE_CSS)
        await page.evaluate(WAIT_FONTS_JS)
        await page.wait_for_timeout(self.config.settle_ms)
        return response.status if response is not None else 0

    async def snapshot(self, page: Page) -> Dict[str, Any]:
        return await page.evaluate(
            _EXTRACT_JS,
            {
                "selectors": self.config.style_selectors,
                "styleProps": self.config.style_props,
                "rectKeys": list(RECT_KEYS),
            },
        )

    async def inspect(self, browser: Browser, case: ParityCase) -> Dict[str, Any]:
        """Load both pages of ``case`` and build its report record."""
        context = await browser.new_context(viewport=VIEWPORTS[case.viewport])
        try:
            legacy_page = await context.new_page()
            new_page = await context.new_page()
            legacy_status, new_status = await asyncio.gather(
                self._open(legacy_page, case.legacy_url), self._open(new_page, case.new_url)
            )
            legacy, new = await asyncio.gather(self.snapshot(legacy_page), self.snapshot(new_page))
        finally:
            await context.close()
        return {
            "viewport": {"name": case.viewport, **VIEWPORTS[case.viewport]},
            "legacyUrl": case.legacy_url,
            "newUrl": case.new_url,
            "status": {"legacy": legacy_status, "new": new_status},
            "selectors": self.config.style_selectors,
            "styleProps": self.config.style_props,
            "legacy": legacy,
            "new": new,
            "diffs": diff_snapshots(legacy, new, self.config.style_selectors),
        }

    def record_path(self, case: ParityCase) -> str:
        return os.path.join(self.out_dir, f"{safe_filename(f'{case.viewport}_{case.path}')}.json")

    async def report(self, browser: Browser, case: ParityCase) -> Dict[str, Any]:
        """Inspect one case and write its record; returns its summary entry."""
        entry: Dict[str, Any] = {"viewport": case.viewport, "path": case.path}
        try:
            record = await self.inspect(browser, case)
        except Exception as exc:  # cases are independent
            logger.warning("Style report failed for %s: %s", case.name, exc)
            entry["error"] = f"{type(exc).__name__}: {exc}"
            return entry
        entry["diffs"] = len(record["diffs"])
        entry["outPath"] = write_json_report(record, out_path=self.record_path(case))
        return entry

    async def run(self, cases: List[ParityCase], *, legacy_base_url: str) -> str:
        """Report every case, at most ``workers`` at a time; returns the summary path."""
        semaphore = asyncio.Semaphore(self.config.workers)

        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=True)
            try:

                async def worker(case: ParityCase) -> Dict[str, Any]:
                    async with semaphore:
                        return await self.report(browser, case)

                entries = await asyncio.gather(*(worker(case) for case in cases))
            finally:
                await browser.close()

        summary = {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "legacyBaseUrl": legacy_base_url,
            "newBaseUrl": self.config.new_base_url,
            "count": len(entries),
            "summary": list(entries),
        }
        path = write_json_report(summary, out_path=os.path.join(self.out_dir, "_summary.json"))
        logger.info("Wrote %d style reports to %s", len(entries), self.out_dir)
        return path
