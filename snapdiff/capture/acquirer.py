"""Render acquirer: navigate, locate, settle, then capture one region."""

from __future__ import annotations

import logging
import time

from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from snapdiff.diff.codec import decode_png
from snapdiff.errors import (
    CaptureTargetNotFoundError,
    CaptureTimeoutError,
    NavigationError,
    NavigationTimeoutError,
)
from snapdiff.models.config import ServiceConfig

from .locator_chain import LocatorResolution, build_chain, resolve_capture_target
from .session import BrowserSessionFactory

logger = logging.getLogger(__name__)


class RenderAcquirer:
    """Produces a single target-region image for a URL.

    Each call gets its own browser session from the factory; the session is
    released before ``capture`` returns or raises.
    """

    def __init__(self, session_factory: BrowserSessionFactory, config: ServiceConfig):
        self.session_factory = session_factory
        self.config = config
        self.chain = build_chain(config)

    async def capture(self, target_url: str) -> Image.Image:
        start = time.time()
        async with self.session_factory.open_page() as page:
            await self._navigate(page, target_url)
            resolution = await resolve_capture_target(page, self.chain)
            if not resolution.found:
                raise CaptureTargetNotFoundError(
                    f"No locator matched on {target_url}", attempts=resolution.attempts
                )
            await self._settle(page)
            png = await self._screenshot(page, resolution)

        image = decode_png(png)
        logger.info("Captured %s via %s (%dx%d) in %.1fs",
                    target_url, resolution.strategy.name, image.width, image.height,
                    time.time() - start)
        return image

    async def _navigate(self, page: Page, url: str) -> None:
        timeout = self.config.timeouts.navigation_ms
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
        except PlaywrightTimeoutError as e:
            if self.config.navigation_policy == "strict":
                raise NavigationTimeoutError(f"Navigation to {url} timed out after {timeout}ms") from e
            logger.warning("Navigation warning: %s did not load within %dms, continuing", url, timeout)
        except PlaywrightError as e:
            raise NavigationError(f"Navigation to {url} failed: {e}") from e

    async def _settle(self, page: Page) -> None:
        """Bounded wait for late async content; never fails the job."""
        timeouts = self.config.timeouts
        try:
            await page.wait_for_load_state("networkidle", timeout=timeouts.settle_ms)
        except PlaywrightTimeoutError:
            logger.debug("Network did not idle within %dms, capturing anyway", timeouts.settle_ms)
        if timeouts.settle_delay_ms:
            await page.wait_for_timeout(timeouts.settle_delay_ms)

    async def _screenshot(self, page: Page, resolution: LocatorResolution) -> bytes:
        timeout = self.config.timeouts.capture_ms
        try:
            if resolution.strategy.is_full_page:
                return await page.screenshot(type="png", full_page=True, timeout=timeout)
            handle = await page.query_selector(resolution.selector)
            if handle is None:
                raise CaptureTargetNotFoundError(
                    f"'{resolution.selector}' detached before capture", attempts=resolution.attempts
                )
            return await handle.screenshot(type="png", timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise CaptureTimeoutError(f"Screenshot timed out after {timeout}ms") from e
