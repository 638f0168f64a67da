"""Capture engine: one navigate/wait/settle/screenshot sequence."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from storysnap.browser.pool import BrowserInstance
from storysnap.errors import CaptureError
from storysnap.utils.browser_options import create_capture_context

logger = logging.getLogger(__name__)

SELECTOR_TIMEOUT_SECONDS = 10.0
SELECTOR_POLL_SECONDS = 0.05
SETTLE_MS = 50


def parse_selectors(csv: str) -> list[str]:
    """Split a comma-separated selector list; falls back to ``body``."""
    selectors = [part.strip() for part in csv.split(",") if part.strip()]
    return selectors or ["body"]


async def wait_for_any(
    page: Page,
    selectors: list[str],
    timeout: float = SELECTOR_TIMEOUT_SECONDS,
    poll_interval: float = SELECTOR_POLL_SECONDS,
) -> str:
    """Poll until any selector matches; return it. Raises CaptureError on timeout."""
    deadline = time.monotonic() + timeout
    while True:
        for selector in selectors:
            try:
                if await page.query_selector(selector) is not None:
                    return selector
            except PlaywrightError as e:
                logger.debug("Selector %s not queryable yet: %s", selector, e)
        if time.monotonic() >= deadline:
            raise CaptureError(
                f"timeout after {timeout:g}s waiting for any of {selectors}"
            )
        await asyncio.sleep(poll_interval)


async def capture(
    instance: BrowserInstance,
    url: str,
    width: int,
    height: int,
    wait_selectors: list[str],
    selector_timeout: float = SELECTOR_TIMEOUT_SECONDS,
    settle_ms: int = SETTLE_MS,
    logger: logging.Logger | None = None,
) -> bytes:
    """Render ``url`` at ``width``x``height`` and return full-page PNG bytes.

    The caller bounds the whole sequence (``asyncio.wait_for``); cancellation
    aborts whichever step is in progress and the browsing context is closed.
    Browser failures are raised as CaptureError.
    """
    log = logger or logging.getLogger(__name__)
    selectors = list(wait_selectors) or ["body"]
    log.info("Capturing %s at %dx%d on instance %d", url, width, height, instance.id)
    log.debug("  wait selectors: %s", selectors)

    try:
        context = await create_capture_context(instance.browser, width, height)
    except PlaywrightError as e:
        raise CaptureError(f"could not open browsing context: {e}") from e

    try:
        page = await context.new_page()
        await page.goto(url, wait_until="domcontentloaded")
        await page.wait_for_selector("body", state="attached")
        await wait_for_any(page, selectors, timeout=selector_timeout)
        await page.wait_for_timeout(settle_ms)
        data = await page.screenshot(full_page=True, type="png")
    except PlaywrightError as e:
        log.error("Capture of %s failed on instance %d: %s", url, instance.id, e)
        raise CaptureError(str(e)) from e
    finally:
        try:
            await context.close()
        except PlaywrightError as e:
            log.debug("Closing context for %s failed: %s", url, e)

    log.info("Captured %s at %dx%d (%d bytes)", url, width, height, len(data))
    return data


def write_capture(path: Path, data: bytes) -> Path:
    """Persist captured bytes, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path
