"""Entry point for running the Agilwatch CLI.

This module defines a top-level Click group that aggregates all subcommands
defined in the ``agilwatch.interfaces.cli`` package. Executing
``python -m agilwatch.interfaces.cli`` invokes this group.
"""

import logging

import click

from agilwatch.infrastructure.observability import configure_logging

from .backfill import backfill
from .status import reset_cursor, status
from .sync import sync


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--verbose/--quiet",
    default=False,
    help="Log debug output (or only warnings with --quiet).",
)
def cli(verbose: bool) -> None:
    """Agilwatch command-line interface."""
    configure_logging(level=logging.DEBUG if verbose else logging.WARNING)


cli.add_command(sync)
cli.add_command(backfill)
cli.add_command(status)
cli.add_command(reset_cursor)


if __name__ == "__main__":
    cli()
