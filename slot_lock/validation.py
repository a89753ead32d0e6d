"""
Validation utilities for the Slot Lock Service

Each validator returns (is_valid, error_message); `validate_slot` collects
them and raises ValidationError for the first failure.
"""

from datetime import datetime
from typing import Optional, Tuple

from shared.errors import ValidationError
from slot_lock.models import (
    DATE_PATTERN,
    IDENTIFIER_PATTERN,
    MAX_DURATION_MIN,
    TIME_PATTERN,
    LockKey,
)


# ============================================================================
# Validation Functions
# ============================================================================

def validate_identifier(value: Optional[str], field: str) -> Tuple[bool, str]:
    """
    Validate a tenant/resource identifier.

    Identifiers become key segments, so the ':' separator is not allowed.
    """
    if not value:
        return False, f"{field} is required"
    if not IDENTIFIER_PATTERN.fullmatch(value):
        return False, f"{field} must be 1-128 characters of letters, digits, '_', '.' or '-'"
    return True, ""


def validate_date(value: Optional[str]) -> Tuple[bool, str]:
    """Validate a YYYY-MM-DD calendar date (rejects 2025-02-30 and friends)."""
    if not value or not DATE_PATTERN.fullmatch(value):
        return False, "date must be in YYYY-MM-DD format"
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False, f"date {value} is not a valid calendar day"
    return True, ""


def validate_start_time(value: Optional[str]) -> Tuple[bool, str]:
    """Validate a 24h HH:mm start time."""
    if not value or not TIME_PATTERN.fullmatch(value):
        return False, "startTime must be in HH:mm format"
    return True, ""


def validate_duration(duration_min: Optional[int]) -> Tuple[bool, str]:
    if duration_min is None:
        return True, ""
    if isinstance(duration_min, bool) or not isinstance(duration_min, int):
        return False, "durationMin must be an integer"
    if duration_min <= 0:
        return False, "durationMin must be a positive integer"
    if duration_min > MAX_DURATION_MIN:
        return False, f"durationMin must not exceed {MAX_DURATION_MIN}"
    return True, ""


def validate_lock_id(lock_id: Optional[str]) -> Tuple[bool, str]:
    if not lock_id or not isinstance(lock_id, str):
        return False, "lockId is required"
    if len(lock_id) > 128:
        return False, "lockId is too long"
    return True, ""


def clamp_ttl(ttl_ms: Optional[int], default_ms: int, min_ms: int, max_ms: int) -> int:
    """
    Resolve the TTL for a lock.

    None falls back to the default; non-positive values are rejected; anything
    else is clamped into [min_ms, max_ms] so no client can hold a slot
    indefinitely.
    """
    if ttl_ms is None:
        return default_ms
    if isinstance(ttl_ms, bool) or not isinstance(ttl_ms, int):
        raise ValidationError("ttlMs must be an integer")
    if ttl_ms <= 0:
        raise ValidationError("ttlMs must be a positive integer")
    return max(min_ms, min(ttl_ms, max_ms))


def validate_slot(tenant_id: str, resource_id: str, date: str, start_time: str) -> LockKey:
    """
    Validate the slot 4-tuple and build its LockKey.

    Raises:
        ValidationError: on the first invalid field
    """
    checks = (
        validate_identifier(tenant_id, "tenantId"),
        validate_identifier(resource_id, "resourceId"),
        validate_date(date),
        validate_start_time(start_time),
    )
    for is_valid, error_msg in checks:
        if not is_valid:
            raise ValidationError(error_msg)

    return LockKey(tenant_id=tenant_id, resource_id=resource_id, date=date, start_time=start_time)


def require(check: Tuple[bool, str]):
    """Raise ValidationError for a failed (is_valid, error_message) check."""
    is_valid, error_msg = check
    if not is_valid:
        raise ValidationError(error_msg)
