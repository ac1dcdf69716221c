"""
Browser manager — Playwright lifecycle for the hosted payment checkout.

One browser instance is shared across checkouts; each payment attempt gets its
own browser context so gateway cookies never leak between orders.
"""
import logging
from typing import Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

logger = logging.getLogger(__name__)


class BrowserManager:
    """Manages a single Playwright browser and the contexts opened on it."""

    def __init__(self, headless: bool = False):
        self._headless = headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._contexts: list[BrowserContext] = []

    @property
    def headless(self) -> bool:
        return self._headless

    async def _ensure_browser(self) -> Browser:
        """Launch browser if not already running."""
        if self._browser and self._browser.is_connected():
            return self._browser

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._headless,
            args=["--disable-dev-shm-usage"],
        )
        logger.info("Browser launched (headless=%s)", self._headless)
        return self._browser

    async def new_page(self) -> Page:
        """Open a page in a fresh browser context."""
        browser = await self._ensure_browser()
        context = await browser.new_context(viewport={"width": 1280, "height": 900})
        self._contexts.append(context)
        return await context.new_page()

    async def serve_html(self, page: Page, url: str, html: str) -> None:
        """Answer requests for ``url`` with ``html`` and navigate there."""
        async def _fulfill(route):
            await route.fulfill(status=200, content_type="text/html", body=html)

        await page.route(url, _fulfill)
        await page.goto(url, wait_until="load", timeout=30000)

    async def close_page(self, page: Page) -> None:
        context = page.context
        try:
            await context.close()
        except Exception as e:
            logger.debug("Context close failed: %s", e)
        if context in self._contexts:
            self._contexts.remove(context)

    async def close(self) -> None:
        """Shut down browser and Playwright."""
        for context in self._contexts:
            try:
                await context.close()
            except Exception:
                pass
        self._contexts.clear()

        if self._browser:
            try:
                await self._browser.close()
            except Exception:
                pass
            self._browser = None

        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception:
                pass
            self._playwright = None

        logger.info("Browser closed")
