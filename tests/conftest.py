"""
Shared fixtures for the newsharvest test suite.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from pydantic import SecretStr

from newsharvest.config import Config
from newsharvest.models import FeedItem


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep developer credentials and config files out of the tests."""
    for name in ("CRYPTOPANIC_API_KEY", "WEBHOOK_URL", "NEWSHARVEST_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config() -> Config:
    """Config with a feed credential and no pacing delay."""
    cfg = Config()
    cfg.feed.auth_token = SecretStr("test-token")
    cfg.pipeline.inter_item_delay = 0.0
    return cfg


@pytest.fixture
def no_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def feed_item() -> FeedItem:
    return FeedItem(
        title="Bitcoin climbs as ETF inflows accelerate",
        aggregator_url="https://cryptopanic.com/news/12345/bitcoin-climbs",
        published_at=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
        source_name="CoinDesk",
    )


ARTICLE_PROSE = (
    "Bitcoin rose to a two month high on Tuesday as investors returned to spot exchange traded funds "
    "after several weeks of steady outflows. Analysts said the move reflected renewed appetite for risk "
    "across global markets, with equities also climbing after softer inflation figures in the United States. "
    "Trading volumes on major venues increased sharply during the Asian session, and derivatives data showed "
    "traders adding long positions ahead of the monthly options expiry. Several market makers noted that "
    "liquidity remains thinner than it was earlier in the year, which could amplify moves in either direction."
)


@pytest.fixture
def article_prose() -> str:
    """About 600 characters of plain prose with no boilerplate."""
    return ARTICLE_PROSE
