"""Simple in-process metrics collection for Agilwatch.

Lightweight counters and histograms for tracking sync health without external
dependencies. Metrics live in memory; the API exposes them at ``/metrics`` in
Prometheus text format and the CLI can print a summary after a run.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Mapping

LabelKey = tuple[tuple[str, str | None], ...]


def _labels_to_key(labels: Mapping[str, str | None] | None) -> LabelKey:
    if labels is None:
        return ()
    return tuple(sorted(labels.items()))


def _label_str(key: LabelKey, quoted: bool = False) -> str:
    if quoted:
        return ",".join(f'{k}="{v}"' for k, v in key)
    return ",".join(f"{k}={v}" for k, v in key) if key else "default"


# ---------------------------------------------------------------------------
# Metric storage
# ---------------------------------------------------------------------------


@dataclass
class Counter:
    """A monotonically increasing counter."""

    name: str
    help_text: str = ""
    _values: dict[LabelKey, float] = field(default_factory=lambda: defaultdict(float))
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def inc(self, value: float = 1.0, labels: Mapping[str, str | None] | None = None) -> None:
        key = _labels_to_key(labels)
        with self._lock:
            self._values[key] += value

    def get(self, labels: Mapping[str, str | None] | None = None) -> float:
        key = _labels_to_key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def snapshot(self) -> dict[LabelKey, float]:
        with self._lock:
            return dict(self._values)


@dataclass
class Histogram:
    """Records a distribution of values; exposes count, sum and average."""

    name: str
    help_text: str = ""
    _observations: dict[LabelKey, list[float]] = field(
        default_factory=lambda: defaultdict(list)
    )
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def observe(self, value: float, labels: Mapping[str, str | None] | None = None) -> None:
        key = _labels_to_key(labels)
        with self._lock:
            self._observations[key].append(value)

    def get_stats(self, labels: Mapping[str, str | None] | None = None) -> dict[str, float]:
        key = _labels_to_key(labels)
        with self._lock:
            values = list(self._observations.get(key, []))
        if not values:
            return {"count": 0, "sum": 0.0, "avg": 0.0}
        return {"count": len(values), "sum": sum(values), "avg": sum(values) / len(values)}

    def keys(self) -> list[LabelKey]:
        with self._lock:
            return list(self._observations)


class MetricRegistry:
    """Registry holding every counter and histogram by name."""

    def __init__(self) -> None:
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, help_text: str = "") -> Counter:
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name=name, help_text=help_text)
            return self._counters[name]

    def histogram(self, name: str, help_text: str = "") -> Histogram:
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name=name, help_text=help_text)
            return self._histograms[name]

    def all_counters(self) -> dict[str, Counter]:
        with self._lock:
            return dict(self._counters)

    def all_histograms(self) -> dict[str, Histogram]:
        with self._lock:
            return dict(self._histograms)

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()


_registry = MetricRegistry()


def increment_counter(
    name: str,
    value: float = 1.0,
    labels: Mapping[str, str | None] | None = None,
    help_text: str = "",
) -> None:
    """Increment a counter by name, creating it on first use."""
    _registry.counter(name, help_text).inc(value, labels)


def observe_histogram(
    name: str,
    value: float,
    labels: Mapping[str, str | None] | None = None,
    help_text: str = "",
) -> None:
    """Record an observation in a histogram, creating it on first use."""
    _registry.histogram(name, help_text).observe(value, labels)


def get_counter_value(name: str, labels: Mapping[str, str | None] | None = None) -> float:
    return _registry.counter(name).get(labels)


def reset_metrics() -> None:
    """Drop every registered metric (used by tests)."""
    _registry.clear()


# ---------------------------------------------------------------------------
# Predefined metrics for Agilwatch
# ---------------------------------------------------------------------------

SYNC_RUNS = "sync_runs_total"
SYNC_RUN_DURATION = "sync_run_duration_seconds"
SYNC_ITEMS_PROCESSED = "sync_items_processed_total"
LISTING_PAGES = "listing_pages_total"
DETAIL_FETCHES = "detail_fetches_total"
CREDENTIAL_CAPTURES = "credential_captures_total"
CIRCUIT_TRIPS = "circuit_trips_total"


def record_sync_run(status: str, duration: float, items_processed: int) -> None:
    """Record a finished orchestrator run."""
    increment_counter(SYNC_RUNS, labels={"status": status}, help_text="Total sync runs")
    observe_histogram(SYNC_RUN_DURATION, duration, help_text="Sync run duration in seconds")
    increment_counter(
        SYNC_ITEMS_PROCESSED,
        value=float(items_processed),
        help_text="Total listing items processed by sync",
    )


def record_listing_page(outcome: str) -> None:
    """Record a listing page fetch; outcome is 'success' or 'failed'."""
    increment_counter(
        LISTING_PAGES, labels={"outcome": outcome}, help_text="Listing page fetches"
    )


def record_detail_fetch(mode: str, outcome: str) -> None:
    """Record a detail fetch.

    Args:
        mode: 'public' or 'authenticated'
        outcome: 'success', 'auth_required', 'invalid_shape' or 'unavailable'
    """
    increment_counter(
        DETAIL_FETCHES,
        labels={"mode": mode, "outcome": outcome},
        help_text="Detail fetches by access mode and outcome",
    )


def record_credential_capture(outcome: str) -> None:
    """Record a credential capture; outcome is 'success', 'timeout' or 'failed'."""
    increment_counter(
        CREDENTIAL_CAPTURES,
        labels={"outcome": outcome},
        help_text="Out-of-band credential captures",
    )


def record_circuit_trip() -> None:
    increment_counter(CIRCUIT_TRIPS, help_text="Public-mode circuit breaker trips")


# ---------------------------------------------------------------------------
# Export utilities
# ---------------------------------------------------------------------------


def get_metrics_summary() -> dict[str, object]:
    """Return a summary of all metrics for logging or API response."""
    counters: dict[str, dict[str, float]] = {}
    histograms: dict[str, dict[str, dict[str, float]]] = {}

    for name, counter in _registry.all_counters().items():
        counters[name] = {_label_str(key): value for key, value in counter.snapshot().items()}

    for name, histogram in _registry.all_histograms().items():
        histograms[name] = {
            _label_str(key): histogram.get_stats(dict(key) if key else None)
            for key in histogram.keys()
        }

    return {"counters": counters, "histograms": histograms}


def format_prometheus() -> str:
    """Format metrics in Prometheus text exposition format."""
    lines: list[str] = []

    for name, counter in _registry.all_counters().items():
        if counter.help_text:
            lines.append(f"# HELP {name} {counter.help_text}")
        lines.append(f"# TYPE {name} counter")
        for key, value in counter.snapshot().items():
            if key:
                lines.append(f"{name}{{{_label_str(key, quoted=True)}}} {value}")
            else:
                lines.append(f"{name} {value}")

    for name, histogram in _registry.all_histograms().items():
        if histogram.help_text:
            lines.append(f"# HELP {name} {histogram.help_text}")
        lines.append(f"# TYPE {name} summary")
        for key in histogram.keys():
            stats = histogram.get_stats(dict(key) if key else None)
            suffix = f"{{{_label_str(key, quoted=True)}}}" if key else ""
            lines.append(f"{name}_count{suffix} {stats['count']}")
            lines.append(f"{name}_sum{suffix} {stats['sum']}")

    return "\n".join(lines)
