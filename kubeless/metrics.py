"""Prometheus metrics for user function calls."""

from typing import Tuple

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest

CALL_TOTAL = Counter(
    "function_calls_total",
    "Number of calls to user function",
)

CALL_HISTOGRAM = Histogram(
    "function_duration_seconds",
    "Duration of user function in seconds",
)

FAILURES_TOTAL = Counter(
    "function_failures_total",
    "Number of failed calls",
)


def exposition() -> Tuple[str, bytes]:
    """Render the process-wide registry in the Prometheus text format."""
    return CONTENT_TYPE_LATEST, generate_latest(REGISTRY)
