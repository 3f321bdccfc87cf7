"""Browser session acquisition as a scoped resource."""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Protocol

from playwright.async_api import Page, async_playwright

from snapdiff.models.config import ServiceConfig
from snapdiff.utils.browser_stealth import create_stealth_context, launch_stealth_browser

logger = logging.getLogger(__name__)


class BrowserSessionFactory(Protocol):
    def open_page(self) -> AbstractAsyncContextManager[Page]:
        """Yield a page in a fresh, isolated browser; release it on exit."""
        ...


class PlaywrightSessionFactory:
    """Launches one Chromium per session and closes it on every exit path."""

    def __init__(self, config: ServiceConfig):
        self.config = config

    @asynccontextmanager
    async def open_page(self) -> AsyncIterator[Page]:
        async with async_playwright() as p:
            logger.debug("Launching Chromium for capture session...")
            browser = await launch_stealth_browser(p, headless=self.config.headless)
            try:
                context = await create_stealth_context(
                    browser,
                    viewport={"width": self.config.viewport.width, "height": self.config.viewport.height},
                    user_agent=self.config.user_agent,
                )
                page = await context.new_page()
                page.set_default_timeout(self.config.timeouts.capture_ms)
                page.set_default_navigation_timeout(self.config.timeouts.navigation_ms)
                yield page
            finally:
                try:
                    await browser.close()
                except Exception as e:
                    logger.warning("Error closing browser: %s", e)
                logger.debug("Capture session released")
