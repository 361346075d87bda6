"""
Prometheus metrics for Budget Versioning.

Everything registers in prometheus_client's default registry. The engine
never starts an exporter itself; an embedding application exposes the
registry however it serves metrics.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Histogram

# Event store

events_appended_total = Counter(
    "bv_events_appended_total",
    "Events written to the event log",
    ["stream_type", "event_type"],
)
events_loaded_total = Counter(
    "bv_events_loaded_total",
    "Events read back from the event log",
    ["stream_type"],
)
stream_version_conflicts_total = Counter(
    "bv_stream_version_conflicts_total",
    "Batches rejected because a stream moved since they were built",
    ["stream_type"],
)

# Commands

command_duration_seconds = Histogram(
    "bv_command_duration_seconds",
    "Wall time of a façade command, validation and append included",
    ["command_type"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)
commands_processed_total = Counter(
    "bv_commands_processed_total",
    "Façade commands by outcome",
    ["command_type", "status"],
)

# Derivation and comparison

versions_derived_total = Counter(
    "bv_versions_derived_total",
    "Versions whose items were derived, by where the amounts came from",
    ["source"],
)
derived_items_total = Counter(
    "bv_derived_items_total",
    "Version items produced by derivation",
)
version_comparisons_total = Counter(
    "bv_version_comparisons_total",
    "Version comparisons computed",
)

P = ParamSpec("P")
R = TypeVar("R")


def track_command_duration(command_type: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Time a façade method and count it as success or failure.

    Any exception counts as a failure and is re-raised unchanged.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        duration = command_duration_seconds.labels(command_type=command_type)

        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception:
                commands_processed_total.labels(command_type=command_type, status="failure").inc()
                raise
            else:
                commands_processed_total.labels(command_type=command_type, status="success").inc()
                return result
            finally:
                duration.observe(time.perf_counter() - started)

        return wrapper

    return decorator
