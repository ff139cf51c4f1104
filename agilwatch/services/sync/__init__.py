"""Sync pipeline: access-mode control, batch orchestration and backfill."""

from .access import AccessModeController, AccessStats, DEFAULT_FAILURE_THRESHOLD
from .backfill import (
    BackfillResult,
    DEFAULT_BACKFILL_LIMIT,
    LineItemBackfill,
    MAX_BACKFILL_LIMIT,
    clamp_limit,
)
from .orchestrator import BatchOrchestrator, SyncRunResult, flatten_pages

__all__ = [
    "AccessModeController",
    "AccessStats",
    "BackfillResult",
    "BatchOrchestrator",
    "DEFAULT_BACKFILL_LIMIT",
    "DEFAULT_FAILURE_THRESHOLD",
    "LineItemBackfill",
    "MAX_BACKFILL_LIMIT",
    "SyncRunResult",
    "clamp_limit",
    "flatten_pages",
]
