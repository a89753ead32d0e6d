"""
Fixtures for booking client tests.

The lock service, its in-memory store and the lifecycle manager all read the
same ManualScheduler clock, so advancing virtual time moves every party.
"""

import pytest

from booking_client.api_client import LocalLockClient
from booking_client.lifecycle import SlotLockManager
from booking_client.models import LifecycleConfig, SlotSelection
from booking_client.scheduler import ManualScheduler
from slot_lock.config import LockServiceConfig
from slot_lock.service import LockService
from slot_lock.store import InMemoryLockStore

START_MS = 1_700_000_000_000


@pytest.fixture
def scheduler():
    return ManualScheduler(start_ms=START_MS)


@pytest.fixture
def lock_service(scheduler):
    config = LockServiceConfig(store_backend="memory", admin_token="test-admin-token")
    return LockService(InMemoryLockStore(clock=scheduler.now_ms), config, clock=scheduler.now_ms)


@pytest.fixture
def lock_client(lock_service):
    return LocalLockClient(lock_service)


@pytest.fixture
def lifecycle_config():
    return LifecycleConfig(ttl_ms=120_000, refresh_interval_ms=30_000)


@pytest.fixture
def manager(lock_client, scheduler, lifecycle_config):
    return SlotLockManager(lock_client, scheduler, lifecycle_config, session_id="session-a")


@pytest.fixture
def slot():
    return SlotSelection(
        tenant_id="t1", resource_id="r1", date="2025-06-01", start_time="10:00", duration_min=30
    )


@pytest.fixture
def other_slot():
    return SlotSelection(
        tenant_id="t1", resource_id="r1", date="2025-06-01", start_time="10:30", duration_min=30
    )
