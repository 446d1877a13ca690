"""Command-line interface for JobQuarry."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from jobquarry import __version__
from jobquarry.config.config import Config
from jobquarry.exceptions import ConfigurationError
from jobquarry.observability.logging import configure_logging
from jobquarry.pipeline import Harvester, RunReport

console = Console(stderr=True)
logger = structlog.get_logger(__name__)

EXIT_CONFIGURATION_ERROR = 2
EXIT_INTERRUPTED = 130


def load_config(config_path: Optional[Path], overrides: Dict[str, Dict[str, Any]]) -> Config:
    """Load YAML (or env-only) configuration and apply command-line overrides."""
    try:
        config = Config.from_yaml(config_path) if config_path else Config()
        if not any(overrides.values()):
            return config
        data = config.model_dump()
        for section, values in overrides.items():
            data[section].update(values)
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def render_report(report: RunReport) -> None:
    table = Table(title="Harvest summary", show_header=False)
    table.add_row("Records persisted", f"{report.records_persisted} / {report.target}")
    table.add_row("Shortfall", str(report.shortfall))
    table.add_row("Listing pages", str(report.pages_visited))
    table.add_row("Listing-only records", str(report.listing_only_records))
    table.add_row("Requests issued", str(report.requests_issued))
    table.add_row("Stop reason", report.stop_reason)
    table.add_row("Elapsed", f"{report.elapsed_seconds:.1f}s")
    console.print(table)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """JobQuarry - resilient job-listing harvester."""


@cli.command()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, path_type=Path), help="YAML config file")
@click.option("--keyword", "-k", help="Search keyword")
@click.option("--location", "-l", help="Search location")
@click.option("--remote", is_flag=True, default=None, help="Remote jobs only")
@click.option("--days", "freshness_days", type=int, help="Only postings from the last N days")
@click.option("--start-url", "start_urls", multiple=True, help="Explicit seed URL (repeatable)")
@click.option("--target", type=int, help="Number of records to persist")
@click.option("--max-pages", type=int, help="Maximum listing pages to visit")
@click.option("--max-concurrency", type=int, help="Upper bound on concurrent tasks")
@click.option("--output", "-o", type=click.Path(path_type=Path), help="JSONL dataset file")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
)
def run(
    config_path: Optional[Path],
    keyword: Optional[str],
    location: Optional[str],
    remote: Optional[bool],
    freshness_days: Optional[int],
    start_urls: Tuple[str, ...],
    target: Optional[int],
    max_pages: Optional[int],
    max_concurrency: Optional[int],
    output: Optional[Path],
    log_level: Optional[str],
) -> None:
    """Harvest job records and print the run report as JSON."""
    search = {"keyword": keyword, "location": location, "remote": remote, "freshness_days": freshness_days}
    if start_urls:
        search["start_urls"] = list(start_urls)
    overrides: Dict[str, Dict[str, Any]] = {
        "search": {k: v for k, v in search.items() if v is not None},
        "budget": {k: v for k, v in {"target": target, "max_pages": max_pages}.items() if v is not None},
        "crawler": {"max_concurrency": max_concurrency} if max_concurrency is not None else {},
        "output": {"path": output} if output is not None else {},
        "monitoring": {"log_level": log_level.upper()} if log_level else {},
    }

    try:
        config = load_config(config_path, overrides)
        configure_logging(config.monitoring)
        query = config.search.to_query()
        query.validate()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(EXIT_CONFIGURATION_ERROR)

    harvester = Harvester(config)
    try:
        report = asyncio.run(harvester.run(query))
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(EXIT_CONFIGURATION_ERROR)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        sys.exit(EXIT_INTERRUPTED)

    render_report(report)
    click.echo(json.dumps(report.to_dict(), indent=2))


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
