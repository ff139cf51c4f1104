"""CLI command for filling in missing line items."""

from __future__ import annotations

import asyncio
import json

import click
from rich.console import Console

from agilwatch.interfaces.cli.context import build_cli_context
from agilwatch.services.sync import DEFAULT_BACKFILL_LIMIT, MAX_BACKFILL_LIMIT

from .sync import config_option, db_option


@click.command(name="backfill")
@db_option
@config_option
@click.option(
    "--limit",
    type=click.IntRange(1, MAX_BACKFILL_LIMIT),
    default=DEFAULT_BACKFILL_LIMIT,
    show_default=True,
    help="Maximum number of stored listings to revisit.",
)
@click.option("--dry-run", is_flag=True, default=False, help="Fetch but do not write.")
@click.option("--json-output", is_flag=True, help="Print the result as JSON.")
def backfill(
    db_path: str | None,
    config_path: str | None,
    limit: int,
    dry_run: bool,
    json_output: bool,
) -> None:
    """Re-fetch detail for stored listings that have no line items."""
    console = Console()
    service = build_cli_context(db_path, config_path).service()
    with console.status("Running backfill..."):
        summary = asyncio.run(service.run_backfill(limit=limit, dry_run=dry_run))

    if json_output:
        click.echo(json.dumps(summary.to_dict(), indent=2, default=str))
    if not summary.succeeded or summary.result is None:
        if not json_output:
            console.print(f"[red]Error during backfill: {summary.error or 'unknown error'}[/red]")
        raise SystemExit(1)
    if json_output:
        return
    result = summary.result
    console.print(
        f"[green]Backfill {result.status}[/green]: processed={result.processed}, "
        f"updated={result.updated}, pending={result.pending}"
    )
