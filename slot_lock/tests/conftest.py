"""
Test configuration and fixtures for slot lock service tests.

Uses the in-memory store on a controllable clock so TTL expiry can be tested
without sleeping.
"""

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from slot_lock.app import app
from slot_lock.config import LockServiceConfig
from slot_lock.service import LockService
from slot_lock.store import InMemoryLockStore

ADMIN_TOKEN = "test-admin-token"


class FakeClock:
    """Epoch-ms clock that only moves when told to"""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_config():
    """Test configuration fixture"""
    return LockServiceConfig(
        store_backend="memory",
        default_ttl_ms=120_000,
        min_ttl_ms=1_000,
        max_ttl_ms=600_000,
        store_timeout_ms=200,
        admin_token=ADMIN_TOKEN,
        max_list_limit=50,
    )


@pytest.fixture
def memory_store(clock):
    return InMemoryLockStore(clock=clock)


@pytest.fixture
def lock_service(memory_store, test_config, clock):
    return LockService(memory_store, test_config, clock=clock)


@pytest.fixture
def slot():
    """A valid slot 4-tuple"""
    return {
        "tenantId": "salon-1",
        "resourceId": "stylist-42",
        "date": "2025-12-30",
        "startTime": "14:00",
    }


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
def client(lock_service, test_config):
    """FastAPI test client with the service wired to the in-memory store"""
    with patch('slot_lock.app.lock_service', lock_service), \
         patch('slot_lock.app.config', test_config):
        yield TestClient(app)
