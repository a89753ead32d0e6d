"""
Configuration for the Slot Lock Service
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("redis", "memory")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in ("true", "1", "yes")


@dataclass
class LockServiceConfig:
    """
    Configuration for the Slot Lock Service.

    Attributes:
        redis_url: Redis connection URL used when store_backend == "redis"
        store_backend: "redis" (multi-instance) or "memory" (single process/dev)
        default_ttl_ms: TTL applied when acquire omits ttlMs (default: 120000)
        min_ttl_ms: Lower clamp for requested TTLs (default: 1000)
        max_ttl_ms: Upper clamp for requested TTLs (default: 600000)
        store_timeout_ms: Bound on every store round trip (default: 2000)
        admin_token: Credential required on admin endpoints (None disables them)
        max_list_limit: Cap for the admin active-locks listing (default: 1000)
        log_lock_events: Emit structured JSON lines for lock operations
        enable_tracing: Set up OpenTelemetry tracing at startup
        trace_console_export: Print finished spans to stdout
    """

    redis_url: str = "redis://localhost:6379/0"
    store_backend: str = "redis"
    default_ttl_ms: int = 120_000
    min_ttl_ms: int = 1_000
    max_ttl_ms: int = 600_000
    store_timeout_ms: int = 2_000
    admin_token: Optional[str] = None
    max_list_limit: int = 1000
    log_lock_events: bool = True
    enable_tracing: bool = False
    trace_console_export: bool = False

    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(f"store_backend must be one of {STORE_BACKENDS}, got {self.store_backend}")

        if self.min_ttl_ms <= 0:
            raise ValueError(f"min_ttl_ms must be positive, got {self.min_ttl_ms}")

        if self.max_ttl_ms < self.min_ttl_ms:
            raise ValueError(
                f"max_ttl_ms ({self.max_ttl_ms}) must be >= min_ttl_ms ({self.min_ttl_ms})"
            )

        if not self.min_ttl_ms <= self.default_ttl_ms <= self.max_ttl_ms:
            raise ValueError(
                f"default_ttl_ms must lie in [{self.min_ttl_ms}, {self.max_ttl_ms}], got {self.default_ttl_ms}"
            )

        if self.store_timeout_ms <= 0:
            raise ValueError(f"store_timeout_ms must be positive, got {self.store_timeout_ms}")

        if self.max_list_limit < 1:
            raise ValueError(f"max_list_limit must be at least 1, got {self.max_list_limit}")

        if self.store_backend == "redis" and not self.redis_url.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError(
                f"redis_url must start with redis://, rediss://, or unix://, got {self.redis_url}"
            )

        if not self.admin_token:
            logger.warning("SLOT_LOCK_ADMIN_TOKEN not set. Admin endpoints will reject every request.")

        logger.info(
            f"LockServiceConfig loaded: store_backend={self.store_backend}, "
            f"default_ttl_ms={self.default_ttl_ms}, max_ttl_ms={self.max_ttl_ms}, "
            f"store_timeout_ms={self.store_timeout_ms}"
        )

    @property
    def store_timeout_seconds(self) -> float:
        return self.store_timeout_ms / 1000

    @staticmethod
    def from_env() -> "LockServiceConfig":
        """
        Load configuration from environment variables.

        Environment Variables:
            SLOT_LOCK_REDIS_URL / REDIS_URL: Redis URL (else built from SLOT_LOCK_REDIS_HOST/PORT/DB)
            SLOT_LOCK_STORE_BACKEND: redis | memory (default: redis)
            SLOT_LOCK_DEFAULT_TTL_MS: Default TTL (default: 120000)
            SLOT_LOCK_MIN_TTL_MS: Minimum TTL (default: 1000)
            SLOT_LOCK_MAX_TTL_MS: Maximum TTL (default: 600000)
            SLOT_LOCK_STORE_TIMEOUT_MS: Store round-trip bound (default: 2000)
            SLOT_LOCK_ADMIN_TOKEN: Admin credential (required for admin endpoints)
            SLOT_LOCK_MAX_LIST_LIMIT: Admin listing cap (default: 1000)
            SLOT_LOCK_LOG_LOCK_EVENTS: Structured lock event logs (default: true)
            SLOT_LOCK_ENABLE_TRACING: OpenTelemetry tracing (default: false)
            SLOT_LOCK_TRACE_CONSOLE_EXPORT: Print spans to stdout (default: false)

        Returns:
            LockServiceConfig instance loaded from environment
        """
        redis_url = os.getenv("SLOT_LOCK_REDIS_URL") or os.getenv("REDIS_URL")
        if not redis_url:
            redis_host = os.getenv("SLOT_LOCK_REDIS_HOST", "localhost")
            redis_port = _env_int("SLOT_LOCK_REDIS_PORT", 6379)
            redis_db = _env_int("SLOT_LOCK_REDIS_DB", 0)
            redis_url = f"redis://{redis_host}:{redis_port}/{redis_db}"

        return LockServiceConfig(
            redis_url=redis_url,
            store_backend=os.getenv("SLOT_LOCK_STORE_BACKEND", "redis").lower(),
            default_ttl_ms=_env_int("SLOT_LOCK_DEFAULT_TTL_MS", 120_000),
            min_ttl_ms=_env_int("SLOT_LOCK_MIN_TTL_MS", 1_000),
            max_ttl_ms=_env_int("SLOT_LOCK_MAX_TTL_MS", 600_000),
            store_timeout_ms=_env_int("SLOT_LOCK_STORE_TIMEOUT_MS", 2_000),
            admin_token=os.getenv("SLOT_LOCK_ADMIN_TOKEN") or None,
            max_list_limit=_env_int("SLOT_LOCK_MAX_LIST_LIMIT", 1000),
            log_lock_events=_env_bool("SLOT_LOCK_LOG_LOCK_EVENTS", True),
            enable_tracing=_env_bool("SLOT_LOCK_ENABLE_TRACING", False),
            trace_console_export=_env_bool("SLOT_LOCK_TRACE_CONSOLE_EXPORT", False),
        )
