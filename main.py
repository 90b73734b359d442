#!/usr/bin/env python3
"""
Production entry point for newsharvest.

Runs one harvest with configuration from ``NEWSHARVEST_CONFIG`` (or
``config.yaml`` in the working directory) and the environment, and prints
the run report as JSON. ``python main.py check`` only validates configuration.
"""

from __future__ import annotations

import asyncio
import json
import os
import signal
import sys
from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from newsharvest.config import load_config
from newsharvest.delivery import create_sink
from newsharvest.exceptions import ConfigurationError, FeedError
from newsharvest.observability import MetricsManager, configure_logging
from newsharvest.pipeline import Pipeline

logger = structlog.get_logger(__name__)


def _install_signal_handlers(task: asyncio.Task) -> None:
    """Cancel the run on SIGTERM/SIGINT so the browser is closed on the way out."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, task.cancel)


async def run_once(pipeline: Pipeline) -> dict:
    task = asyncio.current_task()
    assert task is not None
    _install_signal_handlers(task)
    report = await pipeline.run()
    return report.to_dict()


def main() -> int:
    config_path = os.getenv("NEWSHARVEST_CONFIG")
    try:
        config = load_config(Path(config_path) if config_path else None)
        configure_logging(config.monitoring)
        config.require_credentials()
    except (ConfigurationError, FileNotFoundError, ValidationError, yaml.YAMLError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    if len(sys.argv) > 1 and sys.argv[1] == "check":
        print(json.dumps({"status": "ok", "feed": config.feed.api_url, "webhook": bool(config.delivery.webhook_url)}))
        return 0

    MetricsManager(config.monitoring).start()
    pipeline = Pipeline(config, sink=create_sink(config.delivery))

    try:
        summary = asyncio.run(run_once(pipeline))
    except FeedError as e:
        logger.error("Feed retrieval failed", error=str(e))
        return 1
    except asyncio.CancelledError:
        logger.info("Run cancelled by signal")
        return 130

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
