"""
Booking client lock lifecycle

Client-side half of the slot lock: a state machine that acquires, refreshes
and releases one slot lock per booking session, plus the Lock API clients it
talks through.
"""

from .models import HeldLock, LifecycleConfig, LockState, SlotSelection
from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler, TimerHandle
from .api_client import HttpLockClient, LocalLockClient, LockClient
from .lifecycle import SlotLockManager

__all__ = [
    "HeldLock",
    "LifecycleConfig",
    "LockState",
    "SlotSelection",
    "AsyncioScheduler",
    "ManualScheduler",
    "Scheduler",
    "TimerHandle",
    "HttpLockClient",
    "LocalLockClient",
    "LockClient",
    "SlotLockManager",
]
