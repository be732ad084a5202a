"""In-process metrics for the voucher sync service.

Counters and histograms live in a process-wide registry and can be dumped in
Prometheus text format (``vouchersync sync once --metrics``) or as a dictionary. The
registry is thread-safe because site passes may run on worker threads.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Mapping

LabelKey = tuple[tuple[str, str], ...]


def _labels_to_key(labels: Mapping[str, str] | None) -> LabelKey:
    if not labels:
        return ()
    return tuple(sorted((k, str(v)) for k, v in labels.items()))


@dataclass
class Counter:
    """A monotonically increasing counter."""

    name: str
    help_text: str = ""
    _values: dict[LabelKey, float] = field(default_factory=lambda: defaultdict(float))
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def inc(self, value: float = 1.0, labels: Mapping[str, str] | None = None) -> None:
        key = _labels_to_key(labels)
        with self._lock:
            self._values[key] += value

    def get(self, labels: Mapping[str, str] | None = None) -> float:
        key = _labels_to_key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def snapshot(self) -> dict[LabelKey, float]:
        with self._lock:
            return dict(self._values)


@dataclass
class Histogram:
    """Keeps count and sum per label set; enough for averages and rates."""

    name: str
    help_text: str = ""
    _count: dict[LabelKey, int] = field(default_factory=lambda: defaultdict(int))
    _sum: dict[LabelKey, float] = field(default_factory=lambda: defaultdict(float))
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def observe(self, value: float, labels: Mapping[str, str] | None = None) -> None:
        key = _labels_to_key(labels)
        with self._lock:
            self._count[key] += 1
            self._sum[key] += value

    def get_stats(self, labels: Mapping[str, str] | None = None) -> dict[str, float]:
        key = _labels_to_key(labels)
        with self._lock:
            count = self._count.get(key, 0)
            total = self._sum.get(key, 0.0)
        return {"count": count, "sum": total, "avg": total / count if count else 0.0}

    def keys(self) -> list[LabelKey]:
        with self._lock:
            return list(self._count)


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

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()


_registry = MetricRegistry()


def get_registry() -> MetricRegistry:
    return _registry


def increment_counter(
    name: str,
    value: float = 1.0,
    labels: Mapping[str, str] | None = None,
    help_text: str = "",
) -> None:
    _registry.counter(name, help_text).inc(value, labels)


def observe_histogram(
    name: str,
    value: float,
    labels: Mapping[str, str] | None = None,
    help_text: str = "",
) -> None:
    _registry.histogram(name, help_text).observe(value, labels)


# ---------------------------------------------------------------------------
# Metric names
# ---------------------------------------------------------------------------

OMADA_REQUESTS = "omada_api_requests_total"
OMADA_REQUEST_DURATION = "omada_api_request_duration_seconds"
TOKEN_REQUESTS = "omada_token_requests_total"
SYNC_RUNS = "voucher_sync_runs_total"
SYNC_RUN_DURATION = "voucher_sync_run_duration_seconds"
SYNC_VOUCHERS = "voucher_sync_vouchers_total"
SYNC_SALES_CREATED = "voucher_sync_sales_created_total"


def record_api_request(endpoint: str, status: str, duration: float) -> None:
    """Record one Omada HTTP call; ``status`` is the HTTP code or ``error``."""
    increment_counter(
        OMADA_REQUESTS,
        labels={"endpoint": endpoint, "status": status},
        help_text="Omada API requests",
    )
    observe_histogram(
        OMADA_REQUEST_DURATION,
        duration,
        labels={"endpoint": endpoint},
        help_text="Omada API request duration in seconds",
    )


def record_token_request(outcome: str) -> None:
    increment_counter(
        TOKEN_REQUESTS,
        labels={"outcome": outcome},
        help_text="Access token requests by outcome",
    )


def record_voucher_outcome(outcome: str) -> None:
    increment_counter(
        SYNC_VOUCHERS,
        labels={"outcome": outcome},
        help_text="Vouchers visited by reconciliation, by outcome",
    )


def record_sale_created() -> None:
    increment_counter(SYNC_SALES_CREATED, help_text="Sales created by sync")


def record_sync_run(status: str, duration: float) -> None:
    increment_counter(SYNC_RUNS, labels={"status": status}, help_text="Sync sweeps")
    observe_histogram(
        SYNC_RUN_DURATION, duration, help_text="Sync sweep duration in seconds"
    )


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def _label_str(key: LabelKey, quote: bool) -> str:
    if quote:
        return ",".join(f'{k}="{v}"' for k, v in key)
    return ",".join(f"{k}={v}" for k, v in key)


def get_metrics_summary() -> dict[str, object]:
    """Return all metrics as nested dictionaries."""
    result: dict[str, dict[str, object]] = {"counters": {}, "histograms": {}}
    for name, counter in _registry.all_counters().items():
        result["counters"][name] = {
            (_label_str(key, False) or "default"): value
            for key, value in counter.snapshot().items()
        }
    for name, histogram in _registry.all_histograms().items():
        result["histograms"][name] = {
            (_label_str(key, False) or "default"): histogram.get_stats(dict(key))
            for key in histogram.keys()
        }
    return result


def format_prometheus() -> str:
    """Format metrics in Prometheus text exposition format."""
    lines: list[str] = []
    for name, counter in _registry.all_counters().items():
        if counter.help_text:
            lines.append(f"# HELP {name} {counter.help_text}")
        lines.append(f"# TYPE {name} counter")
        for key, value in counter.snapshot().items():
            labels = _label_str(key, True)
            lines.append(f"{name}{{{labels}}} {value}" if labels else f"{name} {value}")
    for name, histogram in _registry.all_histograms().items():
        if histogram.help_text:
            lines.append(f"# HELP {name} {histogram.help_text}")
        lines.append(f"# TYPE {name} summary")
        for key in histogram.keys():
            stats = histogram.get_stats(dict(key))
            labels = _label_str(key, True)
            suffix = f"{{{labels}}}" if labels else ""
            lines.append(f"{name}_count{suffix} {stats['count']}")
            lines.append(f"{name}_sum{suffix} {stats['sum']}")
    return "\n".join(lines)
