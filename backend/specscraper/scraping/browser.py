"""
Playwright browser lifecycle.

Live fetches go through a remote scraping browser over CDP (or a local
headful Chromium when LOCAL_PLAYWRIGHT is set). Cached HTML is parsed in a
local headless Chromium. Browsers and pages are async context managers and
are closed on every exit path.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from playwright.async_api import Browser, Error as PlaywrightError, Page, Route, async_playwright

from specscraper.core.config import settings
from specscraper.scraping.errors import BrowserError

logger = logging.getLogger(__name__)


async def _block_non_documents(route: Route) -> None:
    if route.request.resource_type != "document":
        await route.abort()
    else:
        await route.continue_()


class BrowserService:
    """
    Creates scoped Playwright browsers and pages.

    Example:
        browsers = BrowserService()
        async with browsers.browser() as browser:
            async with browsers.page(browser) as page:
                await browsers.abort_extra_resources(page)
                await page.goto(url)
    """

    def __init__(
        self,
        ws_endpoint: str | None = None,
        use_local: bool | None = None,
        connect_timeout_ms: int | None = None,
        user_agent: str | None = None,
    ):
        self._ws_endpoint = ws_endpoint if ws_endpoint is not None else settings.BROWSER_WS_ENDPOINT
        self._use_local = use_local if use_local is not None else settings.LOCAL_PLAYWRIGHT
        self._connect_timeout_ms = connect_timeout_ms or settings.BROWSER_CONNECT_TIMEOUT_MS
        self._user_agent = user_agent or settings.BROWSER_USER_AGENT

    @asynccontextmanager
    async def browser(self) -> AsyncIterator[Browser]:
        """Browser for live fetches.

        Raises:
            BrowserError: If no endpoint is configured or the browser cannot start
        """
        if not self._use_local and not self._ws_endpoint:
            raise BrowserError("BROWSER_WS_ENDPOINT is not configured")

        async with async_playwright() as playwright:
            try:
                if self._use_local:
                    browser = await playwright.chromium.launch(headless=False)
                    logger.info("Launched local headful Chromium")
                else:
                    logger.info("Connecting to scraping browser over CDP")
                    browser = await playwright.chromium.connect_over_cdp(
                        self._ws_endpoint,
                        timeout=self._connect_timeout_ms,
                        headers={"User-Agent": self._user_agent},
                    )
                    logger.info("Connected to scraping browser")
            except PlaywrightError as e:
                raise BrowserError(f"Failed to create browser: {e.message}", cause=e) from e

            try:
                yield browser
            finally:
                await self._close(browser)

    @asynccontextmanager
    async def local_browser(self) -> AsyncIterator[Browser]:
        """Local headless browser, used to parse cached HTML.

        Raises:
            BrowserError: If Chromium cannot be launched
        """
        async with async_playwright() as playwright:
            try:
                browser = await playwright.chromium.launch(headless=True)
            except PlaywrightError as e:
                raise BrowserError(f"Failed to create local browser: {e.message}", cause=e) from e
            logger.info("Launched local headless Chromium (for cache parsing)")

            try:
                yield browser
            finally:
                await self._close(browser)

    @asynccontextmanager
    async def page(self, browser: Browser) -> AsyncIterator[Page]:
        """Raises BrowserError if the page cannot be opened."""
        try:
            page = await browser.new_page()
        except PlaywrightError as e:
            raise BrowserError(f"Failed to create page: {e.message}", cause=e) from e

        try:
            yield page
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.error(f"Error closing page: {e.message}")

    async def abort_extra_resources(self, page: Page) -> None:
        """Let only document requests through; images, scripts and styles are aborted."""
        try:
            await page.route("**/*", _block_non_documents)
        except PlaywrightError as e:
            raise BrowserError(f"Failed to set up resource abort: {e.message}", cause=e) from e

    async def _close(self, browser: Browser) -> None:
        try:
            await browser.close()
        except PlaywrightError as e:
            logger.error(f"Error closing browser: {e.message}")
