"""
Delivery sinks for accepted articles.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable

import aiohttp
import structlog
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from newsharvest.config.config import DeliveryConfig
from newsharvest.exceptions import DeliveryError
from newsharvest.models import ExtractionResult, FeedItem

logger = structlog.get_logger(__name__)


def build_payload(item: FeedItem, result: ExtractionResult) -> Dict[str, Any]:
    """JSON body sent for one accepted article."""
    return {
        "title": item.title,
        "url": item.aggregator_url,
        "published_at": item.published_at.isoformat() if item.published_at else None,
        "source": item.source_name,
        "content": result.content,
        "source_url": result.source_url,
        "word_count": result.word_count,
        "char_count": result.char_count,
    }


@runtime_checkable
class DeliverySink(Protocol):
    """Receives each accepted ExtractionResult with its originating FeedItem."""

    name: str

    async def deliver(self, item: FeedItem, result: ExtractionResult) -> None:
        """Deliver one result; raise on failure so the caller can retry."""
        ...

    async def close(self) -> None:
        ...


class WebhookSink:
    """POSTs accepted articles as JSON to a configured endpoint."""

    name = "webhook"

    def __init__(self, config: DeliveryConfig, session: Optional[aiohttp.ClientSession] = None) -> None:
        if not config.webhook_url:
            raise ValueError("WebhookSink requires delivery.webhook_url")
        self.config = config
        self.url = config.webhook_url
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.config.timeout))
            self._owns_session = True
        return self._session

    async def deliver(self, item: FeedItem, result: ExtractionResult) -> None:
        session = await self._get_session()
        try:
            async with session.post(self.url, json=build_payload(item, result)) as response:
                if response.status >= 300:
                    body = await response.text()
                    raise DeliveryError(
                        f"Webhook answered HTTP {response.status}: {body[:200]}",
                        status=response.status,
                    )
        except aiohttp.ClientError as e:
            raise DeliveryError(f"Webhook request failed: {e}") from e
        except TimeoutError as e:
            raise DeliveryError(f"Webhook request timed out after {self.config.timeout}s") from e

        logger.info("Article delivered", sink=self.name, title=item.title, source_url=result.source_url)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


class ConsoleSink:
    """Prints accepted articles; used when no webhook is configured or in dry runs."""

    name = "console"

    def __init__(self, console: Optional[Console] = None, preview_chars: int = 500) -> None:
        self.console = console or Console()
        self.preview_chars = preview_chars

    async def deliver(self, item: FeedItem, result: ExtractionResult) -> None:
        preview = result.content[: self.preview_chars]
        if len(result.content) > self.preview_chars:
            preview = preview.rstrip() + " ..."
        published = item.published_at.isoformat() if item.published_at else "unknown"
        self.console.print(
            Panel(
                escape(preview),
                title=f"[bold]{escape(item.title)}[/bold]",
                subtitle=f"{escape(item.source_name or 'unknown source')} | {published} | {result.word_count} words",
            )
        )
        self.console.print(f"[dim]{escape(result.source_url)}[/dim]")

    async def close(self) -> None:
        return None


def create_sink(config: DeliveryConfig, *, dry_run: bool = False) -> DeliverySink:
    """Webhook sink when an endpoint is configured, console sink otherwise."""
    if dry_run or not config.webhook_url:
        if not dry_run:
            logger.warning("No webhook configured; accepted articles will be printed to the console")
        return ConsoleSink()
    return WebhookSink(config)
