"""Logging and metrics."""

from .logging import configure_logging
from .metrics import METRICS, MetricsManager

__all__ = ["METRICS", "MetricsManager", "configure_logging"]
