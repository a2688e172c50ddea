"""
Prometheus metrics collection for mandate-sync

This module provides metrics instrumentation for monitoring
reconciliation throughput, outcomes, and store health.
"""
import os
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from mandate_sync.core.models import BatchResult, RunSummary

# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# RECONCILIATION METRICS
# =======================

# Records by outcome
records_processed_total = Counter(
    name="mandate_records_processed_total",
    documentation="Total number of mandate records reconciled, by outcome",
    labelnames=["outcome"],  # inserted, updated, skipped_timestamp, skipped_diff, superseded, errored
    registry=REGISTRY,
)

# Parse errors
parse_errors_total = Counter(
    name="mandate_parse_errors_total",
    documentation="Total number of source lines rejected by the parser",
    registry=REGISTRY,
)

# Batch duration
batch_duration_seconds = Histogram(
    name="mandate_batch_duration_seconds",
    documentation="Time spent reconciling one batch in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)

# Batch size
batch_size = Histogram(
    name="mandate_batch_size_records",
    documentation="Number of records in each batch",
    buckets=[10, 50, 100, 200, 500, 1000, 5000, 10000],
    registry=REGISTRY,
)

# Batches processed counter
batches_processed_total = Counter(
    name="mandate_batches_processed_total",
    documentation="Total number of batches processed",
    labelnames=["status"],  # status: success, partial
    registry=REGISTRY,
)

# Throughput of the last run
throughput_records_per_second = Gauge(
    name="mandate_throughput_records_per_second",
    documentation="Throughput of the most recent run in records per second",
    registry=REGISTRY,
)

# =======================
# STORE METRICS
# =======================

# Store call duration
store_operation_duration_seconds = Histogram(
    name="mandate_store_operation_duration_seconds",
    documentation="Time spent in store gateway calls in seconds",
    labelnames=["operation"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
    registry=REGISTRY,
)

# Errors counter
errors_total = Counter(
    name="mandate_errors_total",
    documentation="Total number of contained errors",
    labelnames=["error_type"],  # transaction, bulk_write, audit_write, missing_stored
    registry=REGISTRY,
)

# Parties materialized
parties_created_total = Counter(
    name="mandate_parties_created_total",
    documentation="Total number of creditor and debtor parties created",
    labelnames=["party_type"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Lazy import: HTTP server only needed when the endpoint is enabled
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


class track_duration:
    """
    Context manager for tracking operation duration

    Usage:
        with track_duration(store_operation_duration_seconds, operation="get_mandates"):
            # do work
            pass
    """

    def __init__(self, histogram: Histogram, **labels):
        """
        Initialize duration tracker

        Args:
            histogram: Prometheus Histogram metric
            **labels: Label values for the metric
        """
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        """Start timer"""
        metric = self.histogram.labels(**self.labels) if self.labels else self.histogram
        self.timer = metric.time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Stop timer"""
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    if value <= 0:
        return
    if labels:
        counter.labels(**labels).inc(value)
    else:
        counter.inc(value)


# =======================
# METRICS COLLECTOR CLASS
# =======================

class MetricsCollector:
    """
    Records reconciliation outcomes into the Prometheus registry.

    The engine calls this once per batch and once per run.
    """

    def record_batch(self, result: BatchResult, duration_seconds: float) -> None:
        """
        Record a reconciled batch.

        Args:
            result: Counters for the batch
            duration_seconds: Wall time spent on the batch
        """
        for outcome, value in (
            ("inserted", result.inserted),
            ("updated", result.updated),
            ("skipped_timestamp", result.skipped_by_timestamp),
            ("skipped_diff", result.skipped_by_diff),
            ("superseded", result.superseded),
            ("errored", result.errored),
        ):
            increment_counter(records_processed_total, value, outcome=outcome)

        increment_counter(parties_created_total, result.new_creditors, party_type="creditor")
        increment_counter(parties_created_total, result.new_debtors, party_type="debtor")

        status = "partial" if result.errored or result.audit_failures else "success"
        increment_counter(batches_processed_total, 1, status=status)
        batch_size.observe(result.processed)
        batch_duration_seconds.observe(duration_seconds)

    def record_error(self, error_type: str, count: int = 1) -> None:
        increment_counter(errors_total, count, error_type=error_type)

    def record_run(self, summary: RunSummary) -> None:
        """Record end-of-run figures."""
        increment_counter(parse_errors_total, summary.parse_errors)
        throughput_records_per_second.set(summary.throughput)
