"""
Unit tests for Pipeline orchestration.

The browser, feed and sink are in-memory fakes; resolver, selector, cleaner
and gate are the real components driven through FakePage.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from newsharvest.exceptions import FeedError
from newsharvest.models import FeedItem, PipelineStage, RejectionReason
from newsharvest.observability.metrics import METRICS
from newsharvest.pipeline import Pipeline, chunked
from tests.helpers.fakes import FakeBrowser, FakeFeedClient, RecordingSink
from tests.helpers.metric_delta import get_histogram_count, metric_delta


def item(n: int) -> FeedItem:
    return FeedItem(
        title=f"Story {n}",
        aggregator_url=f"https://publisher.example/story-{n}",
        published_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        source_name="Example",
    )


def article(prose: str) -> str:
    return f'<html><body><nav>Home | Markets</nav><article data-nh-width="700" data-nh-height="900"><p>{prose}</p></article></body></html>'


@pytest.fixture
def site(article_prose):
    return {f"https://publisher.example/story-{n}": article(article_prose) for n in range(5)}


def build(config, site, items, *, sink=None, sleep=None, **kwargs):
    browser = FakeBrowser(site)
    pipeline = Pipeline(
        config,
        feed_client=FakeFeedClient(items),
        sink=sink or RecordingSink(),
        browser=browser,
        sleep=sleep or AsyncMock(),
        **kwargs,
    )
    return pipeline, browser


@pytest.mark.unit
class TestPipelineRun:
    @pytest.mark.asyncio
    async def test_sequential_run_shares_one_context(self, config, site):
        config.pipeline.inter_item_delay = 2.5
        sleep = AsyncMock()
        pipeline, browser = build(config, site, [item(0), item(1), item(2)], sleep=sleep)

        report = await pipeline.run()

        assert [o.accepted for o in report.outcomes] == [True, True, True]
        assert browser.contexts_opened == browser.contexts_closed == 1
        assert len(browser.pages) == 3
        assert all(page.is_closed() for page in browser.pages)
        assert sleep.await_args_list == [call(2.5), call(2.5)]
        assert browser.started == browser.closed == 1
        assert pipeline.sink.closed
        assert report.finished_at is not None

    @pytest.mark.asyncio
    async def test_chunked_run_isolates_contexts(self, config, site):
        config.pipeline.concurrency = 2
        config.pipeline.inter_item_delay = 1.0
        sleep = AsyncMock()
        items = [item(0), item(1), item(2)]
        pipeline, browser = build(config, site, items, sleep=sleep)

        report = await pipeline.run()

        assert [o.item for o in report.outcomes] == items
        assert all(o.accepted for o in report.outcomes)
        assert browser.contexts_opened == browser.contexts_closed == 3
        assert sleep.await_args_list == [call(1.0)]

    @pytest.mark.asyncio
    async def test_feed_error_aborts_before_browser_starts(self, config, site):
        pipeline, browser = build(config, site, [])
        pipeline.feed_client = FakeFeedClient([], error=FeedError("HTTP 401"))

        with pytest.raises(FeedError):
            await pipeline.run()
        assert browser.started == 0

    @pytest.mark.asyncio
    async def test_empty_feed(self, config, site):
        pipeline, browser = build(config, site, [])

        report = await pipeline.run()

        assert report.outcomes == []
        assert browser.started == 0
        assert pipeline.sink.closed

    def test_chunked_helper(self):
        items = [item(n) for n in range(5)]
        assert [len(c) for c in chunked(items, 2)] == [2, 2, 1]


@pytest.mark.unit
class TestPerItemBoundary:
    @pytest.mark.asyncio
    async def test_navigation_failure_is_retried_then_rejected(self, config):
        sleep = AsyncMock()
        pipeline, _ = build(config, {}, [item(0)], sleep=sleep)

        report = await pipeline.run()

        outcome = report.outcomes[0]
        assert outcome.rejection.reason is RejectionReason.NAVIGATION_FAILED
        assert outcome.stage is PipelineStage.RESOLVE
        assert outcome.final_url is None
        assert sleep.await_args_list == [call(2.0), call(4.0)]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_run(self, config, site):
        site = dict(site)
        del site["https://publisher.example/story-1"]
        pipeline, _ = build(config, site, [item(0), item(1), item(2)])

        report = await pipeline.run()

        assert [o.accepted for o in report.outcomes] == [True, False, True]
        assert report.outcomes[1].rejection.reason is RejectionReason.NAVIGATION_FAILED

    @pytest.mark.asyncio
    async def test_unexpected_error_after_snapshot_is_no_content(self, config, site):
        selector = MagicMock()
        selector.select.side_effect = RuntimeError("parser exploded")
        pipeline, _ = build(config, site, [item(0)], selector=selector)

        report = await pipeline.run()

        outcome = report.outcomes[0]
        assert outcome.rejection.reason is RejectionReason.NO_CONTENT_FOUND
        assert outcome.stage is PipelineStage.SELECT
        assert "parser exploded" in outcome.rejection.detail
        assert outcome.final_url == "https://publisher.example/story-0"

    @pytest.mark.asyncio
    async def test_unexpected_error_during_snapshot_is_navigation_failure(self, config, site):
        snapshot = AsyncMock(side_effect=RuntimeError("target crashed"))
        pipeline, _ = build(config, site, [item(0)], snapshot=snapshot)

        report = await pipeline.run()

        outcome = report.outcomes[0]
        assert outcome.rejection.reason is RejectionReason.NAVIGATION_FAILED
        assert outcome.stage is PipelineStage.SNAPSHOT

    @pytest.mark.asyncio
    async def test_no_content(self, config):
        site = {"https://publisher.example/story-0": "<html><body><p>Photo gallery</p></body></html>"}
        pipeline, _ = build(config, site, [item(0)])

        report = await pipeline.run()

        assert report.outcomes[0].rejection.reason is RejectionReason.NO_CONTENT_FOUND

    @pytest.mark.asyncio
    async def test_too_short(self, config):
        body = "Short piece. " * 20
        site = {"https://publisher.example/story-0": article(body)}
        pipeline, _ = build(config, site, [item(0)])

        report = await pipeline.run()

        outcome = report.outcomes[0]
        assert outcome.rejection.reason is RejectionReason.TOO_SHORT
        assert outcome.stage is PipelineStage.VALIDATE


@pytest.mark.unit
class TestDelivery:
    @pytest.mark.asyncio
    async def test_accepted_result_is_delivered(self, config, site, article_prose):
        sink = RecordingSink()
        pipeline, _ = build(config, site, [item(0)], sink=sink)

        report = await pipeline.run()

        outcome = report.outcomes[0]
        assert outcome.delivered
        assert outcome.stage is PipelineStage.DELIVER
        assert sink.delivered == [(item(0), outcome.result)]
        assert outcome.result.content == article_prose

    @pytest.mark.asyncio
    async def test_delivery_retried_until_success(self, config, site):
        sink = RecordingSink(failures=2)
        sleep = AsyncMock()
        pipeline, _ = build(config, site, [item(0)], sink=sink, sleep=sleep)

        report = await pipeline.run()

        assert report.outcomes[0].delivered
        assert sink.calls == 3
        assert sleep.await_args_list == [call(2.0), call(4.0)]

    @pytest.mark.asyncio
    async def test_exhausted_delivery_keeps_result(self, config, site):
        sink = RecordingSink(failures=100)
        pipeline, _ = build(config, site, [item(0), item(1)], sink=sink)

        report = await pipeline.run()

        assert [o.accepted for o in report.outcomes] == [True, True]
        assert [o.delivered for o in report.outcomes] == [False, False]
        assert report.outcomes[0].delivery_error == "endpoint unavailable"
        assert report.delivery_failures == 2
        assert sink.calls == 2 * config.delivery.max_attempts

    @pytest.mark.asyncio
    async def test_unexpected_sink_error_keeps_result(self, config, site):
        sink = RecordingSink()
        sink.deliver = AsyncMock(side_effect=RuntimeError("socket closed"))
        pipeline, _ = build(config, site, [item(0), item(1)], sink=sink)

        report = await pipeline.run()

        outcome = report.outcomes[0]
        assert outcome.accepted
        assert outcome.rejection is None
        assert outcome.stage is PipelineStage.DELIVER
        assert not outcome.delivered
        assert outcome.delivery_error == "RuntimeError: socket closed"
        assert report.outcomes[1].accepted
        assert sink.deliver.await_count == 2


@pytest.mark.unit
class TestDiagnostics:
    @pytest.mark.asyncio
    async def test_screenshot_written_for_rejections(self, config, tmp_path):
        config.debug.screenshot_dir = tmp_path / "shots"
        site = {"https://publisher.example/story-0": "<html><body><p>Photo gallery</p></body></html>"}
        pipeline, browser = build(config, site, [item(0)])

        await pipeline.run()

        shots = browser.pages[0].screenshots
        assert len(shots) == 1
        assert shots[0]["full_page"] is True
        assert shots[0]["path"].endswith("no_content_found-story-0.png")

    @pytest.mark.asyncio
    async def test_no_screenshot_when_accepted(self, config, site, tmp_path):
        config.debug.screenshot_dir = tmp_path / "shots"
        pipeline, browser = build(config, site, [item(0)])

        await pipeline.run()

        assert browser.pages[0].screenshots == []

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, config, site):
        pipeline, _ = build(config, site, [item(0)])
        before = get_histogram_count(METRICS["stage_duration_seconds"].labels(stage="select"))

        with metric_delta(METRICS["items_total"].labels(outcome="accepted")):
            with metric_delta(METRICS["deliveries_total"].labels(status="delivered")):
                await pipeline.run()

        assert get_histogram_count(METRICS["stage_duration_seconds"].labels(stage="select")) == before + 1


@pytest.mark.unit
class TestExtractUrl:
    @pytest.mark.asyncio
    async def test_single_url_is_not_delivered(self, config, site):
        sink = RecordingSink()
        pipeline, browser = build(config, site, [], sink=sink)

        outcome = await pipeline.extract_url("https://publisher.example/story-3")

        assert outcome.accepted
        assert not outcome.delivered
        assert outcome.stage is PipelineStage.VALIDATE
        assert sink.delivered == []
        assert browser.closed == 1
