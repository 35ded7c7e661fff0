"""
Prometheus metrics collection for the quote dispatch core.

Provides observability into operation outcomes, latency, award races
and best-effort side-effect failures.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Operation Metrics
# ============================================================================

operation_duration_seconds = Histogram(
    "quote_dispatch_operation_duration_seconds",
    "Duration of caller-facing operations in seconds",
    ["operation"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

operations_total = Counter(
    "quote_dispatch_operations_total",
    "Total number of caller-facing operations",
    ["operation", "outcome"],  # outcome: ok, skipped, denied, invalid, error
)

# ============================================================================
# Domain Metrics
# ============================================================================

quote_transitions_total = Counter(
    "quote_dispatch_quote_transitions_total",
    "Total number of applied quote status transitions",
    ["action"],
)

award_conflicts_total = Counter(
    "quote_dispatch_award_conflicts_total",
    "Award attempts rejected because a winner already existed",
)

destinations_created_total = Counter(
    "quote_dispatch_destinations_created_total",
    "Destinations created for quotes",
)

mismatch_overrides_total = Counter(
    "quote_dispatch_mismatch_overrides_total",
    "Mismatched providers dispatched with an operator override",
)

capacity_requests_suppressed_total = Counter(
    "quote_dispatch_capacity_requests_suppressed_total",
    "Capacity update requests suppressed by the rolling window",
)

# ============================================================================
# Side-effect Metrics
# ============================================================================

notification_failures_total = Counter(
    "quote_dispatch_notification_failures_total",
    "Best-effort notification or audit writes that failed",
    ["event_type"],
)

notifications_pending = Gauge(
    "quote_dispatch_notifications_pending",
    "Notifications queued on the background worker and not yet finished",
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_operation_duration(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track operation duration.

    Args:
        operation: Operation name used as the metric label
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                operation_duration_seconds.labels(operation=operation).observe(
                    time.perf_counter() - start
                )

        return wrapper

    return decorator


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)
    """
    start_http_server(port)
