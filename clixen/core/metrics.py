"""Prometheus metrics for the gateway.

Metric objects are module-level singletons registered on the default
registry and exposed through ``GET /metrics``.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, generate_latest

UPDATES_TOTAL = Counter(
    "clixen_updates_total",
    "Inbound transport updates by pipeline outcome",
    ["outcome"],
)
UPDATE_DURATION_SECONDS = Histogram(
    "clixen_update_duration_seconds",
    "End-to-end handling time of one inbound update",
)
CLASSIFIER_CALLS_TOTAL = Counter(
    "clixen_classifier_calls_total",
    "Intent classification attempts",
    ["outcome"],
)
GUARD_DENIALS_TOTAL = Counter(
    "clixen_guard_denials_total",
    "Permission and quota denials",
    ["reason"],
)
DISPATCH_TOTAL = Counter(
    "clixen_dispatch_total",
    "Workflow dispatch attempts",
    ["workflow", "outcome"],
)
BACKGROUND_FAILURES_TOTAL = Counter(
    "clixen_background_failures_total",
    "Best-effort side effects that raised",
    ["task"],
)

metrics_generate_latest = generate_latest


@contextmanager
def observe_update_duration() -> Iterator[None]:
    start = time.monotonic()
    try:
        yield
    finally:
        UPDATE_DURATION_SECONDS.observe(time.monotonic() - start)


__all__ = [
    "BACKGROUND_FAILURES_TOTAL",
    "CLASSIFIER_CALLS_TOTAL",
    "DISPATCH_TOTAL",
    "GUARD_DENIALS_TOTAL",
    "UPDATES_TOTAL",
    "UPDATE_DURATION_SECONDS",
    "metrics_generate_latest",
    "observe_update_duration",
]
