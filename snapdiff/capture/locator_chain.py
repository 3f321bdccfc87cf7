"""Locator fallback chain: finds the page region to capture."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from snapdiff.models.config import LocatorConfig, ServiceConfig

logger = logging.getLogger(__name__)

FULL_PAGE = "full_page"


@dataclass(frozen=True)
class LocatorStrategy:
    name: str
    selector: Optional[str]  # None means the whole page
    timeout_ms: int = 0

    @property
    def is_full_page(self) -> bool:
        return self.selector is None


class LocatorResolution:
    """Result of walking the locator chain."""

    def __init__(self, strategy: LocatorStrategy | None, attempts: list[dict]):
        self.strategy = strategy
        self.attempts = attempts  # [{strategy, selector, success}]

    @property
    def found(self) -> bool:
        return self.strategy is not None

    @property
    def selector(self) -> str | None:
        return self.strategy.selector if self.strategy else None


def build_chain(config: ServiceConfig) -> list[LocatorStrategy]:
    """Turn the configured locators into an ordered strategy list."""
    chain = [_strategy_from_config(i, loc) for i, loc in enumerate(config.locators)]
    if config.fallback_to_full_page:
        chain.append(LocatorStrategy(name=FULL_PAGE, selector=None))
    return chain


def _strategy_from_config(index: int, loc: LocatorConfig) -> LocatorStrategy:
    return LocatorStrategy(
        name=loc.name or f"locator_{index}",
        selector=loc.selector,
        timeout_ms=loc.timeout_ms,
    )


async def resolve_capture_target(page: Page, chain: list[LocatorStrategy]) -> LocatorResolution:
    """Try each strategy in order and stop at the first hit.

    The full-page strategy always matches. If no strategy matches, the
    returned resolution has ``found == False``; it is up to the caller to
    treat that as a failure.
    """
    attempts: list[dict] = []
    for strategy in chain:
        if strategy.is_full_page:
            attempts.append({"strategy": strategy.name, "selector": None, "success": True})
            logger.info("Locator chain: falling back to full-page capture")
            return LocatorResolution(strategy, attempts)

        if await _try_selector(page, strategy.selector, strategy.timeout_ms):
            attempts.append({"strategy": strategy.name, "selector": strategy.selector, "success": True})
            logger.debug("Locator chain: '%s' matched via %s", strategy.selector, strategy.name)
            return LocatorResolution(strategy, attempts)

        attempts.append({"strategy": strategy.name, "selector": strategy.selector, "success": False})
        logger.warning("%s not found within %dms, trying next locator", strategy.selector, strategy.timeout_ms)

    logger.debug("Locator chain exhausted after %d attempts", len(attempts))
    return LocatorResolution(None, attempts)


async def _try_selector(page: Page, selector: str, timeout_ms: int) -> bool:
    """Wait for the selector to attach. Returns True if found."""
    try:
        el = await page.wait_for_selector(selector, timeout=timeout_ms, state="attached")
        return el is not None
    except PlaywrightTimeoutError:
        return False
    except PlaywrightError as e:
        # Invalid selector syntax, detached frame, etc.
        logger.debug("Selector '%s' failed: %s", selector, e)
        return False
