"""
Configuration tests for the slot lock service.
"""

import pytest

from slot_lock.config import LockServiceConfig


class TestLockServiceConfig:

    def test_defaults(self):
        config = LockServiceConfig(admin_token="x")
        assert config.default_ttl_ms == 120_000
        assert config.min_ttl_ms == 1_000
        assert config.max_ttl_ms == 600_000
        assert config.store_timeout_seconds == 2.0

    @pytest.mark.parametrize("kwargs", [
        {"store_backend": "sqlite"},
        {"min_ttl_ms": 0},
        {"max_ttl_ms": 500},
        {"default_ttl_ms": 700_000},
        {"store_timeout_ms": 0},
        {"redis_url": "http://localhost:6379"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            LockServiceConfig(**kwargs)

    def test_from_env(self, monkeypatch):
        monkeypatch.delenv("SLOT_LOCK_REDIS_URL", raising=False)
        monkeypatch.delenv("REDIS_URL", raising=False)
        monkeypatch.setenv("SLOT_LOCK_REDIS_HOST", "redis-locks")
        monkeypatch.setenv("SLOT_LOCK_STORE_BACKEND", "MEMORY")
        monkeypatch.setenv("SLOT_LOCK_DEFAULT_TTL_MS", "90000")
        monkeypatch.setenv("SLOT_LOCK_ADMIN_TOKEN", "secret")
        monkeypatch.setenv("SLOT_LOCK_ENABLE_TRACING", "yes")

        config = LockServiceConfig.from_env()

        assert config.redis_url == "redis://redis-locks:6379/0"
        assert config.store_backend == "memory"
        assert config.default_ttl_ms == 90_000
        assert config.admin_token == "secret"
        assert config.enable_tracing

    def test_invalid_env_number_falls_back(self, monkeypatch):
        monkeypatch.setenv("SLOT_LOCK_STORE_TIMEOUT_MS", "fast")
        assert LockServiceConfig.from_env().store_timeout_ms == 2_000
