"""Browser launch options for stable screenshot rendering."""

from __future__ import annotations

import logging
import os
import shutil
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Playwright

logger = logging.getLogger(__name__)

DEFAULT_CHROME_ARGS = [
    "--disable-dev-shm-usage",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
    "--disable-ipc-flooding-protection",
    "--disable-features=Translate,BackForwardCache",
    "--force-color-profile=srgb",
    "--hide-scrollbars",
    "--mute-audio",
]

_CHROME_CANDIDATES = (
    "google-chrome",
    "google-chrome-stable",
    "chromium",
    "chromium-browser",
    "microsoft-edge",
)


def find_chrome() -> Optional[str]:
    """Return a Chrome binary from ``CHROME_BIN`` or PATH, else None.

    None means Playwright's bundled Chromium is used.
    """
    env_bin = os.environ.get("CHROME_BIN")
    if env_bin:
        if os.path.exists(env_bin):
            return env_bin
        logger.warning("CHROME_BIN=%s does not exist, ignoring", env_bin)
        return None
    for candidate in _CHROME_CANDIDATES:
        path = shutil.which(candidate)
        if path:
            return path
    return None


async def launch_browser(
    playwright: Playwright,
    extra_args: Optional[list[str]] = None,
    headless: bool = True,
) -> Browser:
    """Launch one Chromium instance with snapshot-friendly flags."""
    args = DEFAULT_CHROME_ARGS + list(extra_args or [])
    return await playwright.chromium.launch(
        headless=headless,
        args=args,
        executable_path=find_chrome(),
    )


async def create_capture_context(browser: Browser, width: int, height: int) -> BrowserContext:
    """Create an isolated browsing context sized to the case viewport."""
    return await browser.new_context(
        viewport={"width": width, "height": height},
        device_scale_factor=1,
        locale="en-US",
        timezone_id="UTC",
        reduced_motion="reduce",
    )
