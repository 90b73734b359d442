"""
Pipeline orchestration for newsharvest.

One run fetches the feed once and drives every FeedItem through
resolve -> snapshot -> select -> clean -> validate -> deliver, producing
exactly one ItemOutcome per item.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterator, List, Optional, Sequence

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from newsharvest.browser.resolver import RedirectResolver
from newsharvest.browser.session import BrowserSession
from newsharvest.browser.snapshot import capture_document
from newsharvest.config.config import Config
from newsharvest.delivery.sinks import ConsoleSink, DeliverySink
from newsharvest.exceptions import DeliveryError, NavigationError
from newsharvest.extractor.cleaner import BoilerplateCleaner
from newsharvest.extractor.selector import ContentSelector
from newsharvest.feed.client import FeedClient
from newsharvest.models import (
    CleanedContent,
    FeedItem,
    ItemOutcome,
    PipelineStage,
    Rejection,
    RejectionReason,
    RunReport,
)
from newsharvest.observability.metrics import METRICS
from newsharvest.quality.gate import QualityGate
from newsharvest.recovery.retry import with_retry
from newsharvest.utils import slugify

logger = structlog.get_logger(__name__)

# Unexpected errors raised in these stages are reported as navigation failures.
_NAVIGATION_STAGES = frozenset({PipelineStage.RESOLVE, PipelineStage.SNAPSHOT})


class Pipeline:
    """
    Orchestrates one harvesting run.

    Collaborators default to the production implementations built from ``config``;
    each can be passed explicitly, which is how tests swap in fakes for the feed,
    the browser and the sink.
    """

    def __init__(
        self,
        config: Config,
        *,
        feed_client: Optional[FeedClient] = None,
        sink: Optional[DeliverySink] = None,
        browser: Optional[BrowserSession] = None,
        resolver: Optional[RedirectResolver] = None,
        selector: Optional[ContentSelector] = None,
        cleaner: Optional[BoilerplateCleaner] = None,
        gate: Optional[QualityGate] = None,
        snapshot: Callable[[Page, float], Awaitable[Any]] = capture_document,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.feed_client = feed_client or FeedClient(config.feed)
        self.sink: DeliverySink = sink or ConsoleSink()
        self.browser = browser or BrowserSession(config.browser)
        self.resolver = resolver or RedirectResolver(config.browser)
        self.selector = selector or ContentSelector(config.extraction)
        self.cleaner = cleaner or BoilerplateCleaner(config.cleaner)
        self.gate = gate or QualityGate(config.quality)
        self._snapshot = snapshot
        self._sleep = sleep
        self.logger = logger.bind(component="Pipeline")

    async def run(self) -> RunReport:
        """Fetch the feed and process every item. FeedError propagates; per-item failures do not."""
        report = RunReport()
        items = await self.feed_client.fetch_items()
        self.logger.info("Run started", items=len(items), concurrency=self.config.pipeline.concurrency)

        try:
            if items:
                await self.browser.start()
                if self.config.pipeline.concurrency <= 1:
                    await self._run_sequential(items, report)
                else:
                    await self._run_chunked(items, report)
        finally:
            try:
                await self.browser.close()
            finally:
                await self.sink.close()

        report.finished_at = datetime.now(timezone.utc)
        self.logger.info("Run finished", **report.to_dict())
        return report

    async def extract_url(self, url: str) -> ItemOutcome:
        """Run a single URL through resolve/snapshot/select/clean/validate without delivering."""
        item = FeedItem(title=url, aggregator_url=url, published_at=None, source_name="")
        await self.browser.start()
        try:
            async with self.browser.context() as context:
                async with self.browser.page(context) as page:
                    return await self.process_item(page, item, deliver=False)
        finally:
            await self.browser.close()

    async def _run_sequential(self, items: Sequence[FeedItem], report: RunReport) -> None:
        async with self.browser.context() as context:
            for index, item in enumerate(items):
                if index:
                    await self._sleep(self.config.pipeline.inter_item_delay)
                async with self.browser.page(context) as page:
                    report.outcomes.append(await self.process_item(page, item))

    async def _run_chunked(self, items: Sequence[FeedItem], report: RunReport) -> None:
        for index, chunk in enumerate(chunked(items, self.config.pipeline.concurrency)):
            if index:
                await self._sleep(self.config.pipeline.inter_item_delay)
            results = await asyncio.gather(*(self._process_isolated(item) for item in chunk), return_exceptions=True)
            for item, result in zip(chunk, results):
                if isinstance(result, ItemOutcome):
                    report.outcomes.append(result)
                    continue
                if not isinstance(result, Exception):
                    raise result
                # Context setup failed before the item boundary was reached.
                self.logger.error("Isolated context failed", title=item.title, error=str(result))
                outcome = ItemOutcome(
                    item=item,
                    rejection=Rejection(RejectionReason.NAVIGATION_FAILED, f"{type(result).__name__}: {result}"),
                )
                self._record_outcome(outcome)
                report.outcomes.append(outcome)

    async def _process_isolated(self, item: FeedItem) -> ItemOutcome:
        async with self.browser.context() as context:
            async with self.browser.page(context) as page:
                return await self.process_item(page, item)

    async def process_item(self, page: Page, item: FeedItem, *, deliver: bool = True) -> ItemOutcome:
        """Drive one item to its terminal outcome. Never raises for per-item failures."""
        structlog.contextvars.bind_contextvars(item_title=item.title, item_url=item.aggregator_url)
        stage = PipelineStage.RESOLVE
        final_url: Optional[str] = None
        try:
            retry = self.config.retry
            with self._stage_timer(stage):
                navigation = await with_retry(
                    lambda: self.resolver.resolve(page, item.aggregator_url),
                    retry.max_attempts,
                    retry.backoff_base,
                    retry_on=(NavigationError,),
                    name="resolve",
                    sleep=self._sleep,
                )
            final_url = navigation.final_url

            stage = PipelineStage.SNAPSHOT
            with self._stage_timer(stage):
                document = await self._snapshot(page, self.config.browser.navigation_timeout)

            stage = PipelineStage.SELECT
            with self._stage_timer(stage):
                candidate = self.selector.select(document)
            if candidate is None:
                phrase = self.gate.detect_security_wall(self.selector.body_text(document))
                if phrase is not None:
                    rejection = Rejection(RejectionReason.SECURITY_WALL_DETECTED, f"matched {phrase!r} in page body")
                else:
                    rejection = Rejection(RejectionReason.NO_CONTENT_FOUND, "no block met the minimum length")
                return await self._reject(page, item, rejection, stage, final_url)

            stage = PipelineStage.CLEAN
            with self._stage_timer(stage):
                cleaned = CleanedContent(self.cleaner.clean(candidate.text))

            stage = PipelineStage.VALIDATE
            with self._stage_timer(stage):
                verdict = self.gate.validate(cleaned.text, final_url)
            if isinstance(verdict, Rejection):
                return await self._reject(page, item, verdict, stage, final_url)

            outcome = ItemOutcome(item=item, result=verdict, final_url=final_url, stage=PipelineStage.VALIDATE)
            self.logger.info(
                "Article accepted",
                final_url=final_url,
                selector=candidate.origin_selector or "statistical",
                word_count=verdict.word_count,
                char_count=verdict.char_count,
            )
            if deliver:
                stage = outcome.stage = PipelineStage.DELIVER
                with self._stage_timer(stage):
                    await self._deliver(outcome)
            self._record_outcome(outcome)
            return outcome

        except NavigationError as e:
            rejection = Rejection(RejectionReason.NAVIGATION_FAILED, str(e))
            return await self._reject(page, item, rejection, stage, final_url)
        except Exception as e:
            self.logger.exception("Unexpected error while processing item", stage=stage.value, error=str(e))
            reason = (
                RejectionReason.NAVIGATION_FAILED if stage in _NAVIGATION_STAGES else RejectionReason.NO_CONTENT_FOUND
            )
            rejection = Rejection(reason, f"{type(e).__name__}: {e}")
            return await self._reject(page, item, rejection, stage, final_url)
        finally:
            structlog.contextvars.unbind_contextvars("item_title", "item_url")

    async def _deliver(self, outcome: ItemOutcome) -> None:
        assert outcome.result is not None
        item, result = outcome.item, outcome.result
        delivery = self.config.delivery
        try:
            await with_retry(
                lambda: self.sink.deliver(item, result),
                delivery.max_attempts,
                delivery.backoff_base,
                retry_on=(DeliveryError,),
                name="deliver",
                sleep=self._sleep,
            )
        except DeliveryError as e:
            self._delivery_failed(outcome, str(e))
        except Exception as e:
            self.logger.exception("Unexpected error from sink", sink=getattr(self.sink, "name", "sink"))
            self._delivery_failed(outcome, f"{type(e).__name__}: {e}")
        else:
            outcome.delivered = True
            METRICS["deliveries_total"].labels(status="delivered").inc()

    def _delivery_failed(self, outcome: ItemOutcome, error: str) -> None:
        outcome.delivery_error = error
        METRICS["deliveries_total"].labels(status="failed").inc()
        self.logger.error("Delivery failed", sink=getattr(self.sink, "name", "sink"), error=error)

    async def _reject(
        self,
        page: Page,
        item: FeedItem,
        rejection: Rejection,
        stage: PipelineStage,
        final_url: Optional[str],
    ) -> ItemOutcome:
        outcome = ItemOutcome(item=item, rejection=rejection, final_url=final_url, stage=stage)
        self.logger.info(
            "Article rejected",
            reason=rejection.reason.value,
            stage=stage.value,
            final_url=final_url,
            detail=rejection.detail,
        )
        await self._save_screenshot(page, item, rejection)
        self._record_outcome(outcome)
        return outcome

    async def _save_screenshot(self, page: Page, item: FeedItem, rejection: Rejection) -> None:
        debug = self.config.debug
        if debug.screenshot_dir is None:
            return
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        name = f"{stamp}-{rejection.reason.value}-{slugify(item.title) or 'item'}.{debug.screenshot_format}"
        path = debug.screenshot_dir / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True, type=debug.screenshot_format)
        except (PlaywrightError, OSError) as e:
            self.logger.debug("Screenshot failed", path=str(path), error=str(e))
        else:
            self.logger.debug("Screenshot saved", path=str(path))

    @staticmethod
    def _record_outcome(outcome: ItemOutcome) -> None:
        METRICS["items_total"].labels(outcome="accepted" if outcome.accepted else "rejected").inc()
        if outcome.rejection is not None:
            METRICS["rejections_total"].labels(reason=outcome.rejection.reason.value).inc()

    @staticmethod
    @contextmanager
    def _stage_timer(stage: PipelineStage) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            METRICS["stage_duration_seconds"].labels(stage=stage.value).observe(time.perf_counter() - started)


def chunked(items: Sequence[FeedItem], size: int) -> List[Sequence[FeedItem]]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    return [items[i : i + size] for i in range(0, len(items), size)]
