"""
Data models for the booking client lock lifecycle
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class LockState(Enum):
    """Client-side lock lifecycle states"""
    IDLE = "idle"
    ACQUIRING = "acquiring"
    LOCKED = "locked"
    RELEASED = "released"
    EXPIRED = "expired"
    FAILED = "failed"


@dataclass(frozen=True)
class SlotSelection:
    """A slot the customer picked on the calendar"""
    tenant_id: str
    resource_id: str
    date: str
    start_time: str
    duration_min: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "tenantId": self.tenant_id,
            "resourceId": self.resource_id,
            "date": self.date,
            "startTime": self.start_time,
        }
        if self.duration_min is not None:
            payload["durationMin"] = self.duration_min
        return payload


@dataclass
class HeldLock:
    """
    The lock this session currently owns.

    expires_in is the window granted by the last acquire/refresh; progress
    bars measure remaining time against it.
    """
    slot: SlotSelection
    lock_id: str
    expires_at: int
    expires_in: int


@dataclass
class LifecycleConfig:
    """
    Timer settings for SlotLockManager.

    Attributes:
        ttl_ms: TTL requested on acquire and refresh (default: 120000)
        refresh_interval_ms: Auto-refresh period (default: 30000)
        countdown_interval_ms: Local expiry check period (default: 1000)
        auto_refresh: Refresh automatically while LOCKED (default: True)
        expiring_soon_ms: Threshold for is_expiring_soon (default: 30000)
    """

    ttl_ms: int = 120_000
    refresh_interval_ms: int = 30_000
    countdown_interval_ms: int = 1_000
    auto_refresh: bool = True
    expiring_soon_ms: int = 30_000

    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be positive, got {self.ttl_ms}")

        if self.refresh_interval_ms <= 0 or self.countdown_interval_ms <= 0:
            raise ValueError("Timer intervals must be positive")

        # A single missed refresh must not lose the lock
        if self.refresh_interval_ms >= self.ttl_ms / 2:
            raise ValueError(
                f"refresh_interval_ms ({self.refresh_interval_ms}) must be less than "
                f"half of ttl_ms ({self.ttl_ms})"
            )

        if self.expiring_soon_ms < 0:
            raise ValueError(f"expiring_soon_ms must be >= 0, got {self.expiring_soon_ms}")

    @staticmethod
    def from_env() -> "LifecycleConfig":
        """
        Load configuration from environment variables.

        Environment Variables:
            BOOKING_LOCK_TTL_MS (default: 120000)
            BOOKING_LOCK_REFRESH_INTERVAL_MS (default: 30000)
            BOOKING_LOCK_COUNTDOWN_INTERVAL_MS (default: 1000)
            BOOKING_LOCK_AUTO_REFRESH (default: true)
            BOOKING_LOCK_EXPIRING_SOON_MS (default: 30000)
        """
        return LifecycleConfig(
            ttl_ms=int(os.getenv("BOOKING_LOCK_TTL_MS", "120000")),
            refresh_interval_ms=int(os.getenv("BOOKING_LOCK_REFRESH_INTERVAL_MS", "30000")),
            countdown_interval_ms=int(os.getenv("BOOKING_LOCK_COUNTDOWN_INTERVAL_MS", "1000")),
            auto_refresh=os.getenv("BOOKING_LOCK_AUTO_REFRESH", "true").lower() in ("true", "1", "yes"),
            expiring_soon_ms=int(os.getenv("BOOKING_LOCK_EXPIRING_SOON_MS", "30000")),
        )
