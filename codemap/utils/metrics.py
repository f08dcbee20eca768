"""Prometheus metrics utilities for storage monitoring."""

from contextlib import contextmanager
import time

from prometheus_client import Counter, Histogram


STORAGE_OPERATIONS = Counter(
    'codemap_storage_operations_total',
    'Total number of backend storage calls',
    ['backend', 'operation', 'result']
)

STORAGE_FALLBACKS = Counter(
    'codemap_storage_fallbacks_total',
    'Operations routed to the replica store',
    ['operation']
)

STORAGE_LATENCY = Histogram(
    'codemap_storage_latency_seconds',
    'Backend call latency in seconds',
    ['backend', 'operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

ERRORS_TOTAL = Counter(
    'codemap_errors_total',
    'Total number of errors',
    ['service', 'error_type', 'severity']
)

CONNECT_ATTEMPTS = Counter(
    'codemap_connect_attempts_total',
    'Backend connection attempts at startup',
    ['backend', 'result']
)


def record_storage_operation(backend: str, operation: str, result: str = "success") -> None:
    STORAGE_OPERATIONS.labels(
        backend=backend,
        operation=operation,
        result=result
    ).inc()


def record_fallback(operation: str) -> None:
    STORAGE_FALLBACKS.labels(operation=operation).inc()


def record_latency(backend: str, operation: str, latency_seconds: float) -> None:
    STORAGE_LATENCY.labels(
        backend=backend,
        operation=operation
    ).observe(latency_seconds)


def record_error(
    service: str,
    error_type: str,
    severity: str = "error"
) -> None:
    ERRORS_TOTAL.labels(
        service=service,
        error_type=error_type,
        severity=severity
    ).inc()


def record_connect_attempt(backend: str, result: str) -> None:
    CONNECT_ATTEMPTS.labels(backend=backend, result=result).inc()


@contextmanager
def track_latency(backend: str, operation: str):
    start = time.perf_counter()
    try:
        yield
    finally:
        latency = time.perf_counter() - start
        record_latency(backend, operation, latency)
