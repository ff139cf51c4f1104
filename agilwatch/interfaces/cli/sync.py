"""Synchronization CLI for Agilwatch."""

from __future__ import annotations

import asyncio
import json

import click
from rich.console import Console

from agilwatch.infrastructure.observability import get_metrics_summary
from agilwatch.interfaces.cli.context import build_cli_context


def db_option(func):
    return click.option(
        "--db",
        "db_path",
        default=None,
        help="Path to the SQLite database file. Defaults to the configured path.",
    )(func)


def config_option(func):
    return click.option(
        "--config",
        "config_path",
        type=click.Path(dir_okay=False, path_type=str),
        default=None,
        help="Path to config.json. Defaults to the project config.",
    )(func)


@click.command(name="sync")
@db_option
@config_option
@click.option("--batch-size", type=int, default=None, help="Pages processed per run.")
@click.option(
    "--failure-threshold",
    type=int,
    default=None,
    help="Consecutive public detail failures before switching to authenticated mode.",
)
@click.option(
    "--max-concurrent-requests",
    type=int,
    default=None,
    help="Maximum simultaneous listing page requests.",
)
@click.option(
    "--throttle-per-host",
    type=float,
    default=None,
    help="Requests per second allowed per host.",
)
@click.option(
    "--lookback-days",
    type=int,
    default=None,
    help="Only list items published within this many days.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Fetch and enrich but do not write listings or move the cursor.",
)
@click.option(
    "--headed",
    is_flag=True,
    default=False,
    help="Show the browser window used for credential capture.",
)
@click.option(
    "--json-output",
    is_flag=True,
    help="Print the run result as JSON.",
)
@click.option(
    "--show-metrics",
    is_flag=True,
    help="Print the in-process metrics collected during the run.",
)
def sync(
    db_path: str | None,
    config_path: str | None,
    batch_size: int | None,
    failure_threshold: int | None,
    max_concurrent_requests: int | None,
    throttle_per_host: float | None,
    lookback_days: int | None,
    dry_run: bool,
    headed: bool,
    json_output: bool,
    show_metrics: bool,
) -> None:
    """Process the next window of listing pages.

    Listings are enriched with their detail record (public mode first,
    authenticated mode as fallback), upserted into the local database, and
    the page cursor is advanced for the next run.
    """
    console = Console()
    cli_context = build_cli_context(
        db_path,
        config_path,
        batch_size=batch_size,
        failure_threshold=failure_threshold,
        max_concurrent_requests=max_concurrent_requests,
        throttle_per_host=throttle_per_host,
        lookback_days=lookback_days,
        headless=False if headed else None,
    )
    service = cli_context.service()
    if dry_run:
        console.print("[yellow]Dry-run enabled; no database writes will occur.[/yellow]")

    with console.status("Running sync..."):
        summary = asyncio.run(service.run_sync(dry_run=dry_run))

    if json_output:
        click.echo(json.dumps(summary.to_dict(), indent=2, default=str))
    if not summary.succeeded or summary.result is None:
        if not json_output:
            console.print(f"[red]Error during sync: {summary.error or 'unknown error'}[/red]")
        raise SystemExit(1)
    if json_output:
        return

    result = summary.result
    console.print(
        f"[green]Sync {result.status}[/green] (run #{result.run_id}): "
        f"pages={result.processed_pages} of {result.total_pages}, "
        f"items={result.items_seen}, enriched={result.items_enriched}, "
        f"circuit={result.circuit_state}, next page={result.next_run_starts_at}"
    )
    if result.errors:
        console.print("[yellow]Errors:[/yellow]")
        for err in result.errors:
            console.print(f"  - {err}")
    if show_metrics:
        console.print_json(data=get_metrics_summary())
