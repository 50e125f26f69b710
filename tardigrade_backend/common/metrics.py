"""
Prometheus metrics for backend operations.

Tracks:
- Operation counts and outcomes
- Operation latency
- Bytes moved to and from the service
- Open backend instances
"""

import inspect
import time
from functools import wraps
from typing import Callable

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

# ========== Counters ==========

backend_operations_total = Counter(
    "backend_operations_total",
    "Total number of backend operations",
    ["operation", "status"],  # list/get/put/delete/test, success/failure
    registry=REGISTRY,
)

backend_bytes_transferred_total = Counter(
    "backend_bytes_transferred_total",
    "Total payload bytes moved to or from the service",
    ["direction"],  # upload/download
    registry=REGISTRY,
)

# ========== Histograms ==========

backend_operation_duration_seconds = Histogram(
    "backend_operation_duration_seconds",
    "Time to complete a backend operation",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0),
    registry=REGISTRY,
)

# ========== Gauges ==========

backend_open_instances = Gauge(
    "backend_open_instances",
    "Number of backend instances holding an access credential",
    registry=REGISTRY,
)


def _record(operation: str, status: str, start_time: float) -> None:
    backend_operation_duration_seconds.labels(
        operation=operation).observe(time.time() - start_time)
    backend_operations_total.labels(
        operation=operation, status=status).inc()


def track_operation(operation: str):
    """
    Decorator to track backend operation latency and outcome.

    Args:
        operation: Operation name (list/get/put/delete/test)
    """
    def decorator(func: Callable):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            status = "success"
            try:
                return await func(*args, **kwargs)
            except BaseException:
                status = "failure"
                raise
            finally:
                _record(operation, status, start_time)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.time()
            status = "success"
            try:
                return func(*args, **kwargs)
            except BaseException:
                status = "failure"
                raise
            finally:
                _record(operation, status, start_time)

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def record_bytes(direction: str, count: int) -> None:
    """Add transferred payload bytes for a direction (upload/download)."""
    if count > 0:
        backend_bytes_transferred_total.labels(direction=direction).inc(count)


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)
