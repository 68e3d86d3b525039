"""Playwright session used by every fetch in a run."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from playwright.sync_api import Page, sync_playwright

from . import config
from .logging_utils import _scraper_event
from .utils import log_line


@contextmanager
def open_browser(headless: Optional[bool] = None) -> Iterator[Page]:
    """Launch chromium with a realistic fingerprint and yield its only page."""

    headless = config.HEADLESS if headless is None else headless
    with sync_playwright() as pw:
        log_line("🚀 Starting browser...")
        browser = pw.chromium.launch(headless=headless, args=list(config.BROWSER_ARGS))
        try:
            context = browser.new_context(
                user_agent=config.USER_AGENT,
                locale="en-US",
                viewport={"width": 1368, "height": 900},
            )
            context.add_init_script(
                "Object.defineProperty(navigator, 'webdriver', {get: () => false});"
            )
            page = context.new_page()
            page.set_default_navigation_timeout(config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS * 1000)
            _scraper_event("browser", phase="launched", headless=headless)
            yield page
        finally:
            log_line("🚪 Closing browser...")
            browser.close()
            _scraper_event("browser", phase="closed")


__all__ = ["open_browser"]
