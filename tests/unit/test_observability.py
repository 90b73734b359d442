"""
Tests for logging configuration and metric registration.
"""

import json
import logging
from unittest.mock import patch

import pytest
import structlog

from newsharvest.config import MonitoringConfig
from newsharvest.observability import METRICS, MetricsManager, configure_logging
from newsharvest.observability.metrics import Counter


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.mark.unit
class TestMetrics:
    def test_expected_collectors(self):
        assert set(METRICS) == {"items_total", "rejections_total", "deliveries_total", "stage_duration_seconds"}

    def test_duplicate_registration_reuses_collector(self):
        again = Counter("newsharvest_items_total", "Feed items that reached a terminal outcome", ["outcome"])
        assert again is METRICS["items_total"]

    def test_exporter_disabled_without_port(self):
        with patch("newsharvest.observability.metrics.start_http_server") as server:
            MetricsManager(MonitoringConfig()).start()
        server.assert_not_called()

    def test_exporter_started_once(self):
        manager = MetricsManager(MonitoringConfig(prometheus_port=9464))
        with patch("newsharvest.observability.metrics.start_http_server") as server:
            manager.start()
            manager.start()
        server.assert_called_once_with(9464)


@pytest.mark.unit
class TestConfigureLogging:
    def test_json_lines_to_file(self, tmp_path, restore_logging):
        log_file = tmp_path / "logs" / "run.jsonl"
        configure_logging(MonitoringConfig(log_file=str(log_file), log_level="DEBUG"))

        structlog.contextvars.bind_contextvars(item_title="Story 1")
        try:
            structlog.get_logger("newsharvest.test").info("Article accepted", word_count=120)
        finally:
            structlog.contextvars.clear_contextvars()
        for handler in logging.getLogger().handlers:
            handler.flush()

        records = [json.loads(line) for line in log_file.read_text().splitlines()]
        accepted = [r for r in records if r["event"] == "Article accepted"][0]
        assert accepted["word_count"] == 120
        assert accepted["item_title"] == "Story 1"
        assert accepted["level"] == "info"
        assert "timestamp" in accepted
