"""
Visual parity between the legacy site and the new site.

Every selected legacy URL is rendered once per viewport on both origins in
two isolated browser contexts.  Each page is stabilized (no animation,
transition, caret or smooth scrolling; media masked or awaited; fonts
ready; short settle delay), the ``#page`` container (or the full page) is
captured, and the two captures are compared with
:func:`site_migrator.parity.image_diff.compare_images`.

A comparison whose diff ratio exceeds the configured maximum fails and
leaves ``.legacy.png``, ``.new.png`` and ``.diff.png`` in the artifacts
directory.  Comparisons run concurrently up to ``workers`` and never affect
each other.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import re
import time
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit

from playwright.async_api import Browser, BrowserContext, Page, Route, async_playwright

from ..config import VIEWPORTS, ParityConfig
from ..models.reports import DiscoveryPayload
from .image_diff import diff_pngs

logger = logging.getLogger(__name__)

STABILIZE_CSS = """
*, *::before, *::after {
  animation: none !important;
  transition: none !important;
  caret-color: transparent !important;
  scroll-behavior: auto !important;
}
"""
MASK_CSS = "img, video, iframe { visibility: hidden !important; }"
BLOCKED_RESOURCE_TYPES = frozenset({"image", "media"})

WAIT_FONTS_JS = "async () => { if (document.fonts && document.fonts.ready) { await document.fonts.ready; } }"
_WAIT_IMAGES_JS = """
async (timeoutMs) => {
  const root = document.querySelector('#content') || document.body;
  const imgs = Array.from(root.querySelectorAll('img'));
  const deadline = Date.now() + timeoutMs;
  while (Date.now() < deadline) {
    if (!imgs.some((img) => !img.complete)) return;
    await new Promise((r) => setTimeout(r, 100));
  }
}
"""


def safe_filename(text: str) -> str:
    return re.sub(r"[^a-zA-Z0-9._-]+", "_", text).strip("_")


def new_site_url(legacy_url: str, new_base_url: str) -> str:
    """Same path and query on the new origin, fragment dropped."""
    parts = urlsplit(legacy_url)
    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"
    return urljoin(new_base_url.rstrip("/") + "/", path)


def select_urls(
    urls: Iterable[str],
    *,
    url_prefix: str,
    allow: Optional[str] = None,
    deny: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[str]:
    """Payload URLs under ``url_prefix`` passing the allow/deny patterns, capped at ``limit``."""
    allow_re = re.compile(allow) if allow else None
    deny_re = re.compile(deny) if deny else None
    selected = [
        url
        for url in urls
        if url.startswith(url_prefix)
        and (allow_re is None or allow_re.search(url))
        and (deny_re is None or not deny_re.search(url))
    ]
    return selected[:limit] if limit is not None else selected


@dataclass(frozen=True)
class ParityCase:
    legacy_url: str
    new_url: str
    viewport: str

    @property
    def path(self) -> str:
        parts = urlsplit(self.legacy_url)
        return f"{parts.path}?{parts.query}" if parts.query else parts.path

    @property
    def name(self) -> str:
        return f"{self.viewport} {self.path}"


@dataclass
class ParityOutcome:
    case: ParityCase
    ratio: Optional[float] = None
    passed: bool = False
    error: Optional[str] = None
    artifacts: List[str] = field(default_factory=list)
    duration: float = 0.0

    def describe(self) -> str:
        if self.error:
            return f"{self.case.name}: {self.error}"
        return f"diffRatio={self.ratio} legacy={self.case.legacy_url} new={self.case.new_url}"


def build_cases(payload: DiscoveryPayload, config: ParityConfig) -> List[ParityCase]:
    """Selected URLs of ``payload`` crossed with the configured viewports."""
    prefix = payload.base_url + (payload.blog_prefix if payload.scope == "blog" else "")
    urls = select_urls(
        payload.urls, url_prefix=prefix, allow=config.url_allow, deny=config.url_deny, limit=config.limit
    )
    return [
        ParityCase(legacy_url=url, new_url=new_site_url(url, config.new_base_url), viewport=viewport)
        for viewport in config.viewports
        for url in urls
    ]


class ProgressLog:
    """One line per finished comparison, on the logger and in a file."""

    def __init__(self, total: int, path: Optional[str] = None) -> None:
        self.total = total
        self.done = 0
        self.started = time.monotonic()
        self.path = path
        if path:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(path, "w", encoding="utf-8"):
                pass

    def _emit(self, line: str) -> None:
        logger.info(line)
        if self.path:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def start(self, workers: int) -> None:
        self._emit(f"[parity] starting: {self.total} comparisons, workers={workers}")

    def finished(self, outcome: ParityOutcome) -> None:
        self.done += 1
        pct = self.done * 100 // self.total if self.total else 0
        elapsed = time.monotonic() - self.started
        eta = elapsed / self.done * (self.total - self.done)
        status = "PASSED" if outcome.passed else "FAILED"
        self._emit(
            f"[parity] {self.done}/{self.total} ({pct}%) {status} {outcome.case.name} "
            f"({outcome.duration:.1f}s) ETA {eta:.1f}s"
        )

    def end(self) -> None:
        self._emit(f"[parity] finished in {time.monotonic() - self.started:.1f}s")


class ParityRunner:
    """
    Drives chromium over parity cases.

    Pixel diffs run on ``executor``; :meth:`run` starts a process pool sized
    to ``workers`` when none is given, so a long diff never holds up the
    captures of the other comparisons.
    """

    def __init__(
        self,
        config: ParityConfig,
        *,
        progress_file: Optional[str] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.config = config
        self.executor = executor
        self.progress_file = progress_file or os.path.join(config.artifacts_dir, "parity-progress.log")

    async def _block_media(self, route: Route) -> None:
        if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    async def _new_context(self, browser: Browser, viewport: str) -> BrowserContext:
        context = await browser.new_context(viewport=VIEWPORTS[viewport])
        if self.config.mask_media:
            await context.route("**/*", self._block_media)
        return context

    async def _stabilize(self, page: Page) -> None:
        css = STABILIZE_CSS + (MASK_CSS if self.config.mask_media else "")
        await page.add_style_tag(content=css)
        await page.evaluate(WAIT_FONTS_JS)
        await page.wait_for_timeout(self.config.settle_ms)
        if not self.config.mask_media:
            await page.evaluate(_WAIT_IMAGES_JS, self.config.image_wait_ms)

    async def _screenshot(self, page: Page) -> bytes:
        root = page.locator(self.config.root_selector)
        if await root.count():
            return await root.first.screenshot(timeout=self.config.timeout_ms)
        return await page.screenshot(full_page=True, timeout=self.config.timeout_ms)

    async def capture(self, browser: Browser, url: str, viewport: str) -> bytes:
        """Load ``url`` in a fresh context and return the stabilized capture."""
        context = await self._new_context(browser, viewport)
        try:
            page = await context.new_page()
            response = await page.goto(url, wait_until="domcontentloaded", timeout=self.config.timeout_ms)
            if response is None or not response.ok:
                status = response.status if response is not None else "no response"
                raise AssertionError(f"non-OK {status} for {url}")
            await self._stabilize(page)
            return await self._screenshot(page)
        finally:
            await context.close()

    def _write_artifacts(self, case: ParityCase, legacy_png: bytes, new_png: bytes, diff_png: bytes) -> List[str]:
        os.makedirs(self.config.artifacts_dir, exist_ok=True)
        prefix = os.path.join(self.config.artifacts_dir, safe_filename(f"{case.viewport}_{case.path}"))
        written = []
        for suffix, data in (("legacy", legacy_png), ("new", new_png), ("diff", diff_png)):
            path = f"{prefix}.{suffix}.png"
            with open(path, "wb") as f:
                f.write(data)
            written.append(path)
        return written

    async def diff(self, legacy_png: bytes, new_png: bytes) -> Tuple[float, Optional[bytes]]:
        """Diff ratio and, past the allowed maximum, the diff PNG; computed off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self.executor,
            functools.partial(
                diff_pngs,
                legacy_png,
                new_png,
                threshold=self.config.pixelmatch_threshold,
                max_ratio=self.config.max_diff_pixel_ratio,
            ),
        )

    async def compare(self, browser: Browser, case: ParityCase) -> ParityOutcome:
        started = time.monotonic()
        outcome = ParityOutcome(case=case)
        try:
            legacy_png, new_png = await asyncio.gather(
                self.capture(browser, case.legacy_url, case.viewport),
                self.capture(browser, case.new_url, case.viewport),
            )
            outcome.ratio, diff_png = await self.diff(legacy_png, new_png)
            outcome.passed = diff_png is None
            if diff_png is not None:
                outcome.artifacts = self._write_artifacts(case, legacy_png, new_png, diff_png)
        except Exception as exc:  # comparisons are independent
            logger.warning("Parity check failed for %s: %s", case.name, exc)
            outcome.error = f"{type(exc).__name__}: {exc}"
        outcome.duration = time.monotonic() - started
        return outcome

    async def run(self, cases: List[ParityCase]) -> List[ParityOutcome]:
        """Compare every case with at most ``workers`` comparisons in flight."""
        progress = ProgressLog(len(cases), self.progress_file)
        progress.start(self.config.workers)
        semaphore = asyncio.Semaphore(self.config.workers)
        owned: Optional[Executor] = None
        if self.executor is None:
            owned = self.executor = ProcessPoolExecutor(max_workers=self.config.workers)

        try:
            async with async_playwright() as playwright:
                browser = await playwright.chromium.launch(headless=True)
                try:

                    async def worker(case: ParityCase) -> ParityOutcome:
                        async with semaphore:
                            outcome = await self.compare(browser, case)
                        progress.finished(outcome)
                        return outcome

                    outcomes = await asyncio.gather(*(worker(case) for case in cases))
                finally:
                    await browser.close()
        finally:
            if owned is not None:
                owned.shutdown()
                self.executor = None

        progress.end()
        return list(outcomes)


def outcomes_by_name(outcomes: Iterable[ParityOutcome]) -> Dict[str, ParityOutcome]:
    return {outcome.case.name: outcome for outcome in outcomes}
