"""
Shared Utilities for the Booking Slot Lock stack

This module provides common utilities used by the lock service and its clients:
- Error taxonomy (ErrorKind + LockError family)
- Redis client factory and connection pooling
- Observability (Prometheus metrics, OpenTelemetry tracing)
- Structured JSON logging

Usage:
    from shared import RedisConfig, get_redis_client

    redis = await get_redis_client(RedisConfig.from_env())
"""

from .errors import (
    ErrorKind,
    LockError,
    ValidationError,
    ConflictError,
    OwnershipError,
    NotFoundError,
    TransportError,
    AuthorizationError,
    REASON_ALREADY_LOCKED,
    REASON_NOT_FOUND,
    REASON_LOCK_MISMATCH,
    kind_for_reason,
    error_for_reason,
)

from .redis_client import (
    get_redis_client,
    get_redis_pool,
    close_redis_client,
    RedisConfig,
)

from .observability import (
    setup_tracing,
    get_tracer,
    trace_span,
    traced,
    setup_metrics,
    get_metrics_response,
    record_lock_operation,
    record_store_error,
    time_store_call,
    MetricTimer,
    LOCK_OPERATIONS_TOTAL,
    STORE_LATENCY,
    STORE_ERRORS_TOTAL,
)

from .structured_logger import StructuredLogger

__all__ = [
    # Errors
    "ErrorKind",
    "LockError",
    "ValidationError",
    "ConflictError",
    "OwnershipError",
    "NotFoundError",
    "TransportError",
    "AuthorizationError",
    "REASON_ALREADY_LOCKED",
    "REASON_NOT_FOUND",
    "REASON_LOCK_MISMATCH",
    "kind_for_reason",
    "error_for_reason",
    # Redis client utilities
    "get_redis_client",
    "get_redis_pool",
    "close_redis_client",
    "RedisConfig",
    # Observability utilities
    "setup_tracing",
    "get_tracer",
    "trace_span",
    "traced",
    "setup_metrics",
    "get_metrics_response",
    "record_lock_operation",
    "record_store_error",
    "time_store_call",
    "MetricTimer",
    "LOCK_OPERATIONS_TOTAL",
    "STORE_LATENCY",
    "STORE_ERRORS_TOTAL",
    # Logging
    "StructuredLogger",
]
