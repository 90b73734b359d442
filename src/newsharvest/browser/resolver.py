"""
Click-through resolution from an aggregator page to the external article URL.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urljoin, urlparse

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from newsharvest.config.config import BrowserConfig
from newsharvest.exceptions import NavigationError
from newsharvest.models import NavigationOutcome

logger = structlog.get_logger(__name__)

NEW_CONTEXT_SELECTOR = 'a[target="_blank"][href]'


def _is_web_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _css_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class RedirectResolver:
    """
    Follows at most one click-through hop to the article's real host.

    Outbound links are only probed on pages served by one of the configured
    aggregator hosts; any other page is already the article. Probe order on
    the aggregator page: an anchor whose href matches a known
    click-through pattern (followed in the same page), the first anchor that opens
    a new browsing context (followed through the popup, which is always closed),
    and finally no link at all, in which case the page URL itself is the article.
    The reported URL is the one left after the target server's own redirects.
    """

    def __init__(self, config: BrowserConfig) -> None:
        self.config = config
        self.logger = logger.bind(component="RedirectResolver")

    @property
    def _navigation_timeout_ms(self) -> float:
        return self.config.navigation_timeout * 1000

    async def resolve(self, page: Page, page_url: str) -> NavigationOutcome:
        if not _is_web_url(page_url):
            raise NavigationError(f"Not an http(s) URL: {page_url!r}", url=page_url)

        await self._navigate(page, page_url)
        if not self._is_aggregator(page.url):
            return self._outcome(page.url, redirected=False, source=page_url)

        href = await self._find_click_through_href(page)
        if href is not None:
            target = urljoin(page.url, href)
            self.logger.debug("Following click-through link", source=page_url, target=target)
            await self._navigate(page, target)
            return self._outcome(page.url, redirected=True, source=page_url)

        popup_url = await self._follow_new_context_link(page)
        if popup_url is not None:
            await self._navigate(page, popup_url)
            return self._outcome(page.url, redirected=True, source=page_url)

        return self._outcome(page.url, redirected=False, source=page_url)

    def _is_aggregator(self, url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return any(host == h or host.endswith("." + h) for h in self.config.aggregator_hosts)

    def _outcome(self, final_url: str, *, redirected: bool, source: str) -> NavigationOutcome:
        if not _is_web_url(final_url):
            raise NavigationError(f"Navigation ended on a non-web URL: {final_url!r}", url=source)
        self.logger.info("Resolved article URL", source=source, final_url=final_url, redirected=redirected)
        return NavigationOutcome(final_url=final_url, redirected=redirected)

    async def _navigate(self, page: Page, url: str) -> None:
        try:
            response = await page.goto(url, wait_until="domcontentloaded", timeout=self._navigation_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Timed out loading {url}: {e}", url=url) from e
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load {url}: {e}", url=url) from e

        if response is not None and response.status >= 400:
            self.logger.info("Page answered with error status", url=url, status=response.status)
        await self._settle(page)

    async def _settle(self, page: Page) -> None:
        """Wait for in-flight requests to finish, bounded by settle_timeout."""
        if self.config.settle_timeout <= 0:
            return
        try:
            await page.wait_for_load_state("networkidle", timeout=self.config.settle_timeout * 1000)
        except PlaywrightTimeoutError:
            self.logger.debug("Page did not reach network idle; continuing", url=page.url)

    async def _find_click_through_href(self, page: Page) -> Optional[str]:
        for pattern in self.config.click_through_patterns:
            handle = await page.query_selector(f'a[href*="{_css_string(pattern)}"]')
            if handle is None:
                continue
            href = await handle.get_attribute("href")
            if href and href.strip():
                return href.strip()
        return None

    async def _follow_new_context_link(self, page: Page) -> Optional[str]:
        """Click the first new-tab link and return the popup's settled URL; the popup is always closed."""
        handle = await page.query_selector(NEW_CONTEXT_SELECTOR)
        if handle is None:
            return None

        try:
            async with page.expect_popup(timeout=self._navigation_timeout_ms) as popup_info:
                await handle.click()
            popup = await popup_info.value
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"New browsing context did not open: {e}", url=page.url) from e
        except PlaywrightError as e:
            raise NavigationError(f"Failed to open link in new context: {e}", url=page.url) from e

        try:
            await popup.wait_for_load_state("domcontentloaded", timeout=self._navigation_timeout_ms)
            await self._settle(popup)
            popup_url = popup.url
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Timed out waiting for new context: {e}", url=page.url) from e
        finally:
            if not popup.is_closed():
                await popup.close()

        if not _is_web_url(popup_url):
            raise NavigationError(f"New context ended on {popup_url!r}", url=page.url)
        return popup_url
