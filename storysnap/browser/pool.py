"""Browser pool: a fixed set of long-lived Chromium instances."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import Browser, Playwright, async_playwright

from storysnap.errors import SetupError
from storysnap.utils.browser_options import launch_browser

logger = logging.getLogger(__name__)


@dataclass
class BrowserInstance:
    """One launched browser. Tasks only open contexts on it, never mutate it."""

    id: int
    browser: Browser

    async def close(self) -> None:
        await self.browser.close()


class BrowserPool:
    """Owns the browser instances shared by all capture tasks."""

    def __init__(
        self,
        playwright: Optional[Playwright],
        instances: list[BrowserInstance],
        logger: logging.Logger | None = None,
    ):
        self._playwright = playwright
        self._instances = list(instances)
        self.log = logger or logging.getLogger(__name__)

    @classmethod
    async def launch(
        cls,
        n: int,
        chrome_args: Optional[list[str]] = None,
        headless: bool = True,
        logger: logging.Logger | None = None,
    ) -> "BrowserPool":
        """Start ``n`` instances, all or nothing.

        If any launch fails, every instance started by this call is closed and
        the Playwright driver stopped before ``SetupError`` is raised.
        """
        log = logger or logging.getLogger(__name__)
        n = max(n, 1)
        playwright = await async_playwright().start()
        instances: list[BrowserInstance] = []
        try:
            for i in range(n):
                browser = await launch_browser(playwright, chrome_args, headless=headless)
                instances.append(BrowserInstance(id=i, browser=browser))
                log.debug("Launched browser instance %d/%d", i + 1, n)
        except Exception as e:
            log.error("Failed to launch browser instance %d/%d: %s", len(instances) + 1, n, e)
            await _close_instances(instances, log)
            await playwright.stop()
            raise SetupError(f"failed to launch browser instance: {e}") from e

        log.info("Launched %d browser instances", len(instances))
        return cls(playwright, instances, logger=log)

    @property
    def instances(self) -> tuple[BrowserInstance, ...]:
        return tuple(self._instances)

    def __len__(self) -> int:
        return len(self._instances)

    def pick(self) -> BrowserInstance:
        """Pick an instance for a task: the only one, or uniformly at random."""
        if not self._instances:
            raise RuntimeError("browser pool is closed")
        if len(self._instances) == 1:
            return self._instances[0]
        return random.choice(self._instances)

    async def close_all(self) -> None:
        """Close every instance and stop the driver. Safe to call repeatedly."""
        instances, self._instances = self._instances, []
        await _close_instances(instances, self.log)
        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            await playwright.stop()
        if instances:
            self.log.debug("Closed %d browser instances", len(instances))


async def _close_instances(instances: list[BrowserInstance], log: logging.Logger) -> None:
    for inst in instances:
        try:
            await inst.close()
        except Exception as e:
            log.warning("Failed to close browser instance %d: %s", inst.id, e)
