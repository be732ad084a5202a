"""Observability facades: contextual logging and in-process metrics."""

from .logging import (
    configure_logging,
    get_logger,
    log_context,
    log_exception,
)
from .metrics import (
    format_prometheus,
    get_metrics_summary,
    get_registry,
    increment_counter,
    observe_histogram,
    record_api_request,
    record_sale_created,
    record_sync_run,
    record_token_request,
    record_voucher_outcome,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "log_context",
    "log_exception",
    # Metrics
    "format_prometheus",
    "get_metrics_summary",
    "get_registry",
    "increment_counter",
    "observe_histogram",
    "record_api_request",
    "record_sale_created",
    "record_sync_run",
    "record_token_request",
    "record_voucher_outcome",
]
