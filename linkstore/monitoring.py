"""
Monitoring and metrics collection using Prometheus.
"""
from prometheus_client import Counter, Histogram, generate_latest, REGISTRY
from typing import Callable
import time
import functools


# Metrics
operations_total = Counter(
    'linkstore_operations_total',
    'Total number of link manager operations',
    ['operation', 'status']
)

operation_duration = Histogram(
    'linkstore_operation_duration_seconds',
    'Time spent in link manager operations',
    ['operation']
)

link_requests_swept_total = Counter(
    'linkstore_link_requests_swept_total',
    'Total number of expired link requests removed by sweeps'
)

errors_total = Counter(
    'linkstore_errors_total',
    'Total number of errors by type',
    ['error_type', 'component']
)


def track_operation(operation: str):
    """
    Decorator recording duration and outcome of an async manager operation.

    Args:
        operation: Label used for the operation (e.g. 'create_link_request')
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                operations_total.labels(operation=operation, status="error").inc()
                record_error(type(e).__name__, operation)
                raise
            finally:
                operation_duration.labels(operation=operation).observe(time.perf_counter() - start_time)
            operations_total.labels(operation=operation, status="success").inc()
            return result

        return wrapper

    return decorator


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def record_error(error_type: str, component: str):
    """
    Record an error occurrence.

    Args:
        error_type: Type of error (e.g., 'ExpiredError')
        component: Component where error occurred (e.g., 'resolve_link_request')
    """
    errors_total.labels(error_type=error_type, component=component).inc()
