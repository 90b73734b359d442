"""
Detached snapshot of a rendered page with per-element layout boxes.
"""

from __future__ import annotations

import asyncio

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from newsharvest.exceptions import NavigationError
from newsharvest.extractor.selector import HEIGHT_ATTR, WIDTH_ATTR
from newsharvest.models import RenderedDocument

logger = structlog.get_logger(__name__)

# Stamps rendered box sizes so selection can run on a parsed copy outside the browser.
_STAMP_LAYOUT_JS = f"""
() => {{
    if (!document.body) return 0;
    const elements = document.body.querySelectorAll('*');
    for (const el of elements) {{
        const rect = el.getBoundingClientRect();
        el.setAttribute('{WIDTH_ATTR}', Math.round(rect.width));
        el.setAttribute('{HEIGHT_ATTR}', Math.round(rect.height));
    }}
    return elements.length;
}}
"""


async def capture_document(page: Page, timeout: float) -> RenderedDocument:
    """Annotate the live page with layout sizes and return its serialized HTML."""
    try:
        async with asyncio.timeout(timeout):
            stamped = await page.evaluate(_STAMP_LAYOUT_JS)
            html = await page.content()
    except TimeoutError as e:
        raise NavigationError(f"Timed out capturing rendered document after {timeout}s", url=page.url) from e
    except PlaywrightError as e:
        raise NavigationError(f"Failed to capture rendered document: {e}", url=page.url) from e

    logger.debug("Captured rendered document", url=page.url, elements=stamped, html_length=len(html))
    return RenderedDocument(url=page.url, html=html)
