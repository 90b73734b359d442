"""
Playwright browser lifecycle with scoped, disposable browsing contexts.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from newsharvest.config.config import BrowserConfig

logger = structlog.get_logger(__name__)


class BrowserSession:
    """
    Owns the browser process for one run.

    Use as an async context manager; the browser and the Playwright driver are
    stopped on both success and failure paths. Each ``context()`` is an isolated
    cookie/navigation scope that is closed when the block exits.
    """

    def __init__(self, config: BrowserConfig) -> None:
        self.config = config
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def start(self) -> None:
        if self._browser is not None:
            return
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=list(self.config.launch_args),
            )
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise
        logger.info("Browser started", headless=self.config.headless)

    async def close(self) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
            logger.info("Browser closed")

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @asynccontextmanager
    async def context(self) -> AsyncIterator[BrowserContext]:
        """Yield a fresh browsing context, closed on every exit path."""
        if self._browser is None:
            raise RuntimeError("BrowserSession not started. Use 'async with BrowserSession(...)'.")
        context = await self._browser.new_context(
            user_agent=self.config.user_agent,
            viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
            java_script_enabled=True,
        )
        context.set_default_navigation_timeout(self.config.navigation_timeout * 1000)
        context.set_default_timeout(self.config.navigation_timeout * 1000)
        try:
            yield context
        finally:
            await context.close()

    @staticmethod
    @asynccontextmanager
    async def page(context: BrowserContext) -> AsyncIterator[Page]:
        """Yield a new page in ``context``, closed on every exit path."""
        page = await context.new_page()
        try:
            yield page
        finally:
            if not page.is_closed():
                await page.close()
