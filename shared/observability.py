"""
Observability Module for the Slot Lock Service

Provides:
- OpenTelemetry tracing setup and a `traced` decorator for service operations
- Prometheus metrics for lock operations and store latency
"""

import functools
import inspect
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    Info,
    generate_latest,
)

logger = logging.getLogger(__name__)

_tracer: Optional[trace.Tracer] = None
_metrics_initialized = False


# =============================================================================
# OpenTelemetry Tracing
# =============================================================================

def setup_tracing(service_name: str, enable_console_export: bool = False) -> trace.Tracer:
    """
    Setup OpenTelemetry tracing for the service.

    Args:
        service_name: Name reported on every span
        enable_console_export: Print finished spans to stdout (debugging)

    Returns:
        Tracer instance
    """
    global _tracer

    resource = Resource.create({
        SERVICE_NAME: service_name,
        "service.version": os.getenv("SERVICE_VERSION", "1.0.0"),
        "deployment.environment": os.getenv("DEPLOYMENT_ENV", "development"),
    })
    provider = TracerProvider(resource=resource)

    if enable_console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("Console trace exporter enabled")

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(service_name)

    logger.info(f"OpenTelemetry tracing initialized for {service_name}")
    return _tracer


def get_tracer() -> Optional[trace.Tracer]:
    """Get the global tracer instance (None until setup_tracing runs)."""
    return _tracer


@asynccontextmanager
async def trace_span(name: str, attributes: Optional[Dict[str, Any]] = None):
    """
    Async context manager for a trace span. No-op when tracing is off.

    Usage:
        async with trace_span("lock.acquire", {"tenant_id": tenant_id}):
            ...
    """
    if not _tracer:
        yield None
        return

    with _tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            span.set_attribute(key, str(value))
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


def traced(name: Optional[str] = None, attributes_fn: Optional[Callable] = None):
    """
    Decorator to trace an async function.

    Usage:
        @traced("lock.acquire", attributes_fn=lambda args, kwargs: {"tenant_id": args[1]})
        async def acquire(self, tenant_id, ...):
            ...
    """
    def decorator(func):
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"traced() only supports coroutine functions, got {func!r}")
        span_name = name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if not _tracer:
                return await func(*args, **kwargs)

            attrs = attributes_fn(args, kwargs) if attributes_fn else {}
            async with trace_span(span_name, attrs):
                return await func(*args, **kwargs)

        return wrapper

    return decorator


# =============================================================================
# Prometheus Metrics
# =============================================================================

LOCK_OPERATIONS_TOTAL = Counter(
    "slot_lock_operations_total",
    "Lock operations by outcome",
    ["operation", "outcome"],
)

STORE_LATENCY = Histogram(
    "slot_lock_store_latency_seconds",
    "Latency of lock store round trips",
    ["operation"],
    buckets=(0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

STORE_ERRORS_TOTAL = Counter(
    "slot_lock_store_errors_total",
    "Lock store failures and timeouts",
    ["operation"],
)

SERVICE_INFO = Info("slot_lock_service", "Service information")


def setup_metrics(service_name: str, service_version: str = "1.0.0"):
    """Publish service info once per process."""
    global _metrics_initialized

    if _metrics_initialized:
        return

    SERVICE_INFO.info({
        "service": service_name,
        "version": service_version,
        "environment": os.getenv("DEPLOYMENT_ENV", "development"),
    })
    _metrics_initialized = True
    logger.info(f"Prometheus metrics initialized for {service_name}")


def get_metrics_response():
    """
    Get Prometheus metrics as HTTP response content.

    Returns:
        Tuple of (content_bytes, content_type)
    """
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


def record_lock_operation(operation: str, outcome: str):
    """Count a lock operation, e.g. ("acquire", "conflict")."""
    LOCK_OPERATIONS_TOTAL.labels(operation=operation, outcome=outcome).inc()


def record_store_error(operation: str):
    STORE_ERRORS_TOTAL.labels(operation=operation).inc()


class MetricTimer:
    """Context manager timing an operation into a histogram."""

    def __init__(self, histogram, labels: Optional[Dict[str, str]] = None):
        self.histogram = histogram
        self.labels = labels or {}
        self.start_time = None

    def _observe(self):
        if self.start_time is None:
            return
        duration = time.perf_counter() - self.start_time
        if self.labels:
            self.histogram.labels(**self.labels).observe(duration)
        else:
            self.histogram.observe(duration)

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self._observe()

    async def __aenter__(self):
        self.start_time = time.perf_counter()
        return self

    async def __aexit__(self, *args):
        self._observe()


def time_store_call(operation: str) -> MetricTimer:
    """Create a timer for one lock store round trip."""
    return MetricTimer(STORE_LATENCY, {"operation": operation})
