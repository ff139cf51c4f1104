"""CLI commands for inspecting and resetting sync state."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.table import Table

from agilwatch.interfaces.cli.context import build_cli_context

from .sync import config_option, db_option


@click.command(name="status")
@db_option
@config_option
@click.option("--runs", "recent", type=int, default=5, show_default=True, help="Recent runs to show.")
@click.option("--json-output", is_flag=True, help="Print the status as JSON.")
def status(db_path: str | None, config_path: str | None, recent: int, json_output: bool) -> None:
    """Show the page cursor, stored listing counts and recent runs."""
    info = build_cli_context(db_path, config_path).service().status(recent=recent)
    if json_output:
        click.echo(json.dumps(info, indent=2, default=str))
        return

    console = Console()
    console.print(
        f"Cursor: [bold]{info['cursor']}[/bold] (next run starts at page {info['next_start_page']}, "
        f"updated {info['cursor_updated_at'] or 'never'})"
    )
    console.print(
        f"Listings stored: {info['listings']} ({info['missing_line_items']} without line items)"
    )
    runs = info["recent_runs"]
    if not runs:
        console.print("No runs recorded yet.")
        return
    table = Table(title="Recent runs")
    for column in ("id", "kind", "status", "pages", "items", "enriched", "circuit", "started"):
        table.add_column(column)
    for run in runs:
        pages = (
            f"{run['start_page']}-{run['end_page']}" if run.get("start_page") is not None else "-"
        )
        table.add_row(
            str(run["id"]),
            run["kind"],
            run["status"],
            pages,
            str(run.get("items_seen") or 0),
            str(run.get("items_enriched") or 0),
            run.get("circuit_state") or "-",
            run["started_at"],
        )
    console.print(table)


@click.command(name="reset-cursor")
@db_option
@config_option
@click.option("--page", type=click.IntRange(min=0), default=0, show_default=True,
              help="Last processed page to store; the next run starts after it.")
def reset_cursor(db_path: str | None, config_path: str | None, page: int) -> None:
    """Move the page cursor so the next run starts at PAGE + 1."""
    cursor = build_cli_context(db_path, config_path).service().reset_cursor(page)
    click.echo(f"Cursor set to {cursor.last_processed_page}; next run starts at page {cursor.start_page}.")
