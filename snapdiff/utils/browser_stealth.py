"""Browser stealth utilities: reduces bot detection signals in Playwright."""

from __future__ import annotations

from typing import Optional

from playwright.async_api import Browser, BrowserContext, Playwright

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]

_STEALTH_INIT_SCRIPT = """
// Hide navigator.webdriver
Object.defineProperty(navigator, 'webdriver', { get: () => false });

// Fake languages (headless Chrome can expose an empty list)
Object.defineProperty(navigator, 'languages', {
    get: () => ['en-US', 'en'],
});

if (!window.chrome) {
    window.chrome = {};
}
if (!window.chrome.runtime) {
    window.chrome.runtime = {};
}
"""


async def launch_stealth_browser(playwright: Playwright, headless: bool = True) -> Browser:
    """Launch Chromium with container-friendly, low-detection arguments."""
    return await playwright.chromium.launch(headless=headless, args=LAUNCH_ARGS)


async def create_stealth_context(
    browser: Browser,
    viewport: dict,
    user_agent: Optional[str] = None,
) -> BrowserContext:
    """Create a browser context with stealth patches applied."""
    context = await browser.new_context(
        viewport=viewport,
        user_agent=user_agent or DEFAULT_USER_AGENT,
        locale="en-US",
        timezone_id="America/New_York",
        extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
    )
    await context.add_init_script(_STEALTH_INIT_SCRIPT)
    return context
