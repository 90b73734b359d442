"""Command-line interface for newsharvest."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import structlog
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from newsharvest import __version__
from newsharvest.config import Config, load_config
from newsharvest.delivery import create_sink
from newsharvest.exceptions import ConfigurationError, FeedError
from newsharvest.models import ItemOutcome, RunReport
from newsharvest.observability import MetricsManager, configure_logging
from newsharvest.pipeline import Pipeline

console = Console()
logger = structlog.get_logger(__name__)

EXIT_RUN_FAILED = 1
EXIT_CONFIG_ERROR = 2


def _load(ctx: click.Context) -> Config:
    """Load configuration and configure logging; configuration problems exit with code 2."""
    try:
        config = load_config(ctx.obj["config_path"])
    except (FileNotFoundError, ValidationError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(e))}")
        sys.exit(EXIT_CONFIG_ERROR)
    if ctx.obj["log_level"]:
        config.monitoring.log_level = ctx.obj["log_level"]
    configure_logging(config.monitoring)
    return config


def _outcome_row(outcome: ItemOutcome) -> tuple[str, ...]:
    if outcome.result is not None:
        status = "[green]delivered[/green]" if outcome.delivered else "[yellow]accepted[/yellow]"
        detail = f"{outcome.result.word_count} words"
        if outcome.delivery_error:
            status = "[red]delivery failed[/red]"
            detail = outcome.delivery_error
    else:
        assert outcome.rejection is not None
        status = f"[red]{outcome.rejection.reason.value}[/red]"
        detail = outcome.rejection.detail
    return (escape(outcome.item.title), status, escape(detail), outcome.final_url or "-")


def render_report(report: RunReport) -> None:
    items = Table(title="Items", show_lines=False)
    items.add_column("Title", style="cyan", overflow="fold", max_width=50)
    items.add_column("Outcome")
    items.add_column("Detail", overflow="fold", max_width=40)
    items.add_column("Final URL", style="dim", overflow="fold")
    for outcome in report.outcomes:
        items.add_row(*_outcome_row(outcome))
    console.print(items)

    summary = Table(title="Run Summary")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", style="magenta")
    summary.add_row("Items", str(len(report.outcomes)))
    summary.add_row("Accepted", str(report.accepted))
    summary.add_row("Delivered", str(report.delivered))
    summary.add_row("Delivery failures", str(report.delivery_failures))
    for reason, count in sorted(report.rejections_by_reason.items(), key=lambda kv: kv[0].value):
        summary.add_row(f"Rejected: {reason.value}", str(count))
    if report.finished_at:
        summary.add_row("Duration", f"{(report.finished_at - report.started_at).total_seconds():.1f}s")
    console.print(summary)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="Configuration file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides monitoring.log_level)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: Optional[str]) -> None:
    """newsharvest - extract full article text from a ranked news feed."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None
    ctx.obj["log_level"] = log_level


@cli.command()
@click.option("--limit", type=click.IntRange(min=1), help="Number of feed items to process")
@click.option("--concurrency", type=click.IntRange(min=1), help="Items processed at once, each in its own context")
@click.option("--dry-run", is_flag=True, help="Print accepted articles instead of posting them")
@click.pass_context
def run(ctx: click.Context, limit: Optional[int], concurrency: Optional[int], dry_run: bool) -> None:
    """Fetch the feed and harvest every item."""
    config = _load(ctx)
    if limit is not None:
        config.feed.limit = limit
    if concurrency is not None:
        config.pipeline.concurrency = concurrency
    try:
        config.require_credentials()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        sys.exit(EXIT_CONFIG_ERROR)

    MetricsManager(config.monitoring).start()
    pipeline = Pipeline(config, sink=create_sink(config.delivery, dry_run=dry_run))

    console.print(
        Panel.fit(
            f"[bold blue]newsharvest[/bold blue]\n"
            f"Feed: {config.feed.api_url} ({config.feed.filter}, top {config.feed.limit})\n"
            f"Sink: {pipeline.sink.name}\n"
            f"Concurrency: {config.pipeline.concurrency}",
            title="Starting Run",
        )
    )

    try:
        report = asyncio.run(pipeline.run())
    except FeedError as e:
        logger.error("Feed retrieval failed", error=str(e))
        console.print(f"[red]Feed retrieval failed:[/red] {escape(str(e))}")
        sys.exit(EXIT_RUN_FAILED)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        sys.exit(130)

    render_report(report)


@cli.command()
@click.argument("url")
@click.pass_context
def extract(ctx: click.Context, url: str) -> None:
    """Run a single URL through resolution, selection, cleaning and the quality gate."""
    config = _load(ctx)
    outcome = asyncio.run(Pipeline(config).extract_url(url))

    table = Table(title="Extraction Verdict")
    table.add_column("Field", style="cyan")
    table.add_column("Value", overflow="fold")
    table.add_row("URL", url)
    table.add_row("Final URL", outcome.final_url or "-")
    if outcome.result is not None:
        table.add_row("Verdict", "[green]accepted[/green]")
        table.add_row("Words", str(outcome.result.word_count))
        table.add_row("Characters", str(outcome.result.char_count))
        console.print(table)
        console.print(Panel(escape(outcome.result.content), title="Content"))
        return

    assert outcome.rejection is not None
    table.add_row("Verdict", f"[red]{outcome.rejection.reason.value}[/red]")
    table.add_row("Stage", outcome.stage.value)
    table.add_row("Detail", escape(outcome.rejection.detail) or "-")
    console.print(table)
    sys.exit(EXIT_RUN_FAILED)


def _masked(config: Config) -> Dict[str, Any]:
    data = config.model_dump(mode="json")
    data["feed"]["auth_token"] = "********" if config.feed.auth_token else None
    return data


@cli.command("check-config")
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Show the resolved configuration and verify required credentials."""
    config = _load(ctx)

    table = Table(title="Resolved Configuration")
    table.add_column("Section", style="cyan")
    table.add_column("Key", style="blue")
    table.add_column("Value", overflow="fold")
    for section, values in _masked(config).items():
        if not isinstance(values, dict):
            table.add_row("-", section, escape(str(values)))
            continue
        for key, value in values.items():
            table.add_row(section, key, escape(str(value)))
    console.print(table)

    try:
        config.require_credentials()
    except ConfigurationError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        sys.exit(EXIT_CONFIG_ERROR)
    console.print("[green]✓ Configuration is valid[/green]")


def main() -> None:
    """Main entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
