"""CLI interface facades for Agilwatch.

This package is the canonical home for all Click commands.
"""

from .__main__ import cli
from .backfill import backfill
from .status import reset_cursor, status
from .sync import sync

__all__ = ["backfill", "cli", "reset_cursor", "status", "sync"]
