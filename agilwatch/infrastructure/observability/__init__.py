"""Observability and logging facades."""

from .logging import (
    configure_logging,
    current_log_context,
    get_logger,
    log_context,
    log_exception,
)
from .metrics import (
    format_prometheus,
    get_counter_value,
    get_metrics_summary,
    increment_counter,
    observe_histogram,
    record_circuit_trip,
    record_credential_capture,
    record_detail_fetch,
    record_listing_page,
    record_sync_run,
    reset_metrics,
)

__all__ = [
    # Logging
    "configure_logging",
    "current_log_context",
    "get_logger",
    "log_context",
    "log_exception",
    # Metrics
    "format_prometheus",
    "get_counter_value",
    "get_metrics_summary",
    "increment_counter",
    "observe_histogram",
    "record_circuit_trip",
    "record_credential_capture",
    "record_detail_fetch",
    "record_listing_page",
    "record_sync_run",
    "reset_metrics",
]
