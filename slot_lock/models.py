"""
Data models for the Slot Lock Service

Contains the lock key/record dataclasses, validation patterns, and the
Pydantic models that form the HTTP contract (camelCase on the wire).
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================================================
# Constants
# ============================================================================

KEY_PREFIX = "booking_lock"
METRICS_PREFIX = "booking_lock_metrics:"
KEY_SEPARATOR = ":"

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]{1,128}$")

MAX_DURATION_MIN = 24 * 60

COUNTER_NAMES = (
    "acquire_success",
    "acquire_conflict",
    "verify_valid",
    "verify_invalid",
    "refresh_success",
    "refresh_failed",
    "release_success",
    "release_not_found",
    "force_release",
)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class LockKey:
    """The (tenant, resource, date, start time) tuple a lock protects"""
    tenant_id: str
    resource_id: str
    date: str
    start_time: str

    def to_key(self) -> str:
        """Canonical store key; identical tuples always produce identical keys"""
        return KEY_SEPARATOR.join(
            (KEY_PREFIX, self.tenant_id, self.resource_id, self.date, self.start_time)
        )

    @staticmethod
    def tenant_prefix(tenant_id: str) -> str:
        return f"{KEY_PREFIX}{KEY_SEPARATOR}{tenant_id}{KEY_SEPARATOR}"


@dataclass
class LockRecord:
    """Value stored per key"""
    lock_id: str
    tenant_id: str
    resource_id: str
    date: str
    start_time: str
    created_at: int  # epoch ms
    expires_at: int  # epoch ms
    ttl_ms: int
    duration_min: Optional[int] = None

    @property
    def key(self) -> LockKey:
        return LockKey(self.tenant_id, self.resource_id, self.date, self.start_time)

    def remaining_ms(self, now_ms: int) -> int:
        return max(0, self.expires_at - now_ms)

    def is_live(self, now_ms: int) -> bool:
        return self.expires_at > now_ms

    def to_dict(self) -> Dict[str, Any]:
        """camelCase representation, used both in the store and on the wire"""
        return {
            "lockId": self.lock_id,
            "tenantId": self.tenant_id,
            "resourceId": self.resource_id,
            "date": self.date,
            "startTime": self.start_time,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
            "ttlMs": self.ttl_ms,
            "durationMin": self.duration_min,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LockRecord":
        duration = data.get("durationMin")
        return cls(
            lock_id=data["lockId"],
            tenant_id=data["tenantId"],
            resource_id=data["resourceId"],
            date=data["date"],
            start_time=data["startTime"],
            created_at=int(data["createdAt"]),
            expires_at=int(data["expiresAt"]),
            ttl_ms=int(data["ttlMs"]),
            duration_min=int(duration) if duration is not None else None,
        )


# ============================================================================
# Pydantic Models for API
# ============================================================================

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SlotRequest(CamelModel):
    """The slot a request refers to"""
    tenant_id: str = Field(..., description="Tenant identifier")
    resource_id: str = Field(..., description="Specialist/room identifier")
    date: str = Field(..., description="Calendar day, YYYY-MM-DD")
    start_time: str = Field(..., description="Slot start, HH:mm")


class AcquireRequest(SlotRequest):
    duration_min: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("durationMin", "duration", "duration_min"),
        description="Booking length in minutes",
    )
    ttl_ms: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("ttlMs", "ttl", "ttl_ms"),
        description="Requested lock TTL in ms (server-clamped)",
    )


class LockIdRequest(SlotRequest):
    lock_id: str = Field(..., description="Ownership token returned by acquire")


class RefreshRequest(LockIdRequest):
    ttl_ms: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("ttlMs", "ttl", "ttl_ms"),
        description="New TTL in ms (server-clamped)",
    )


class AcquireResponse(CamelModel):
    locked: bool = Field(..., description="Whether the slot lock was granted")
    lock_id: Optional[str] = Field(None, description="Ownership token")
    expires_at: Optional[int] = Field(None, description="Expiry, epoch ms")
    expires_in: Optional[int] = Field(None, description="Milliseconds until expiry")
    reason: Optional[str] = Field(None, description="Why the lock was not granted")
    remaining_ttl: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("remainingTTL", "remainingTtl", "remaining_ttl"),
        serialization_alias="remainingTTL",
        description="Advisory ms until the current holder's lock expires",
    )


class VerifyResponse(CamelModel):
    valid: bool = Field(..., description="Whether the caller still owns the lock")
    expires_at: Optional[int] = None
    expires_in: Optional[int] = None
    reason: Optional[str] = None


class RefreshResponse(CamelModel):
    refreshed: bool = Field(..., description="Whether the lock TTL was extended")
    expires_at: Optional[int] = None
    expires_in: Optional[int] = None
    reason: Optional[str] = None


class ReleaseResponse(CamelModel):
    released: bool = Field(..., description="Whether this call removed the lock")
    reason: Optional[str] = None
    existed: Optional[bool] = Field(None, description="Admin force-release: whether a lock was present")


class ActiveLock(CamelModel):
    lock_id: str
    tenant_id: str
    resource_id: str
    date: str
    start_time: str
    created_at: int
    expires_at: int
    ttl_ms: int
    duration_min: Optional[int] = None
    remaining_ms: int


class ActiveLocksResponse(CamelModel):
    tenant_id: str
    count: int
    locks: List[ActiveLock]


class MetricsResponse(CamelModel):
    counters: Dict[str, int] = Field(..., description="Cluster-wide operation counters")
    active_locks: int = Field(..., description="Live lock records across all tenants")
    uptime_seconds: float = Field(..., description="Instance uptime in seconds")


class HealthResponse(CamelModel):
    status: str = Field(..., description="healthy/unhealthy")
    store_backend: str
    store_connected: bool
    latency_ms: float
    uptime_seconds: float
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: str
    message: str
    reason: Optional[str] = None
