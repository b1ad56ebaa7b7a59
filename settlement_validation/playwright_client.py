"""
Direct Playwright client
========================

Launches Playwright in-process and owns one browser, one context and one page.
Each role in the dual-role flow gets its own client, so cookies, storage and
page event hooks are never shared between sessions.

Usage:
    async with PlaywrightClient(base_url="http://localhost:8080") as client:
        await client.page.goto("/")
"""

import logging
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)


class PlaywrightClient:
    """One browser engine, one context and one page for a single session."""

    def __init__(
        self,
        browser_type: str = "chromium",
        headless: bool = True,
        timeout: int = 30000,
        base_url: Optional[str] = None,
        viewport: Optional[dict] = None,
    ):
        """
        Args:
            browser_type: Browser to use (chromium, firefox, webkit)
            headless: Run in headless mode
            timeout: Default timeout in milliseconds for page operations
            base_url: Base URL the context resolves relative navigation against
            viewport: Optional {"width": ..., "height": ...}
        """
        self.browser_type = browser_type
        self.headless = headless
        self.timeout = timeout
        self.base_url = base_url
        self.viewport = viewport

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self):
        """Launch the browser and open the default context and page."""
        self._playwright = await async_playwright().start()

        if self.browser_type == "firefox":
            launcher = self._playwright.firefox
        elif self.browser_type == "webkit":
            launcher = self._playwright.webkit
        else:
            launcher = self._playwright.chromium
        self._browser = await launcher.launch(headless=self.headless)
        logger.debug("Launched %s (headless=%s)", self.browser_type, self.headless)

        self._context = await self.new_context()
        self._page = await self._context.new_page()

    async def new_context(self, **kwargs) -> BrowserContext:
        """Create a browser context carrying the client's base URL and viewport."""
        if not self._browser:
            raise RuntimeError("Client not connected. Use 'async with' or call connect()")

        if self.base_url and "base_url" not in kwargs:
            kwargs["base_url"] = self.base_url
        if self.viewport and "viewport" not in kwargs:
            kwargs["viewport"] = self.viewport
        context = await self._browser.new_context(**kwargs)
        context.set_default_timeout(self.timeout)
        return context

    async def close(self):
        """Close page, context, browser and Playwright in that order."""
        if self._page:
            await self._page.close()
            self._page = None

        if self._context:
            await self._context.close()
            self._context = None

        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError(f"{self.browser_type} session has no open page")
        return self._page
