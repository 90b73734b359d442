"""
Defines and manages Prometheus metrics for the application.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

import structlog
from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Histogram as _OrigHistogram
from prometheus_client import start_http_server

if TYPE_CHECKING:
    from newsharvest.config.config import MonitoringConfig

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Re-importing this module (test reloads, multiple pipelines in one process)
# must reuse the already-registered collectors.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            return _PROM_REGISTRY._names_to_collectors[name]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    return {
        "items_total": Counter(
            "newsharvest_items_total",
            "Feed items that reached a terminal outcome",
            ["outcome"],
        ),
        "rejections_total": Counter(
            "newsharvest_rejections_total",
            "Rejected feed items by reason",
            ["reason"],
        ),
        "deliveries_total": Counter(
            "newsharvest_deliveries_total",
            "Delivery attempts by final status",
            ["status"],
        ),
        "stage_duration_seconds": Histogram(
            "newsharvest_stage_duration_seconds",
            "Time spent in each per-item pipeline stage",
            ["stage"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120),
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()


class MetricsManager:
    """Manages the lifecycle of the metrics exporter."""

    def __init__(self, config: MonitoringConfig) -> None:
        self.config = config
        self.started = False

    def start(self) -> None:
        """Starts the Prometheus server when a port is configured."""
        if not self.config.prometheus_port or self.started:
            return
        start_http_server(self.config.prometheus_port)
        self.started = True
        logger.info("Prometheus metrics server started", port=self.config.prometheus_port)
