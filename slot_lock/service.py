"""
Lock Service

Stateless API layer over a LockStore: validates requests, builds canonical
keys, mints ownership tokens, and maps store results to the fixed response
vocabulary. Holds no locks of its own; concurrent acquires on one key are
ordered entirely by the store's set-if-absent primitive, so any number of
service instances can share one store.
"""

import asyncio
import logging
import time
import uuid
from typing import Awaitable, Callable, Optional, TypeVar

from shared.errors import (
    REASON_ALREADY_LOCKED,
    REASON_LOCK_MISMATCH,
    REASON_NOT_FOUND,
    TransportError,
    ValidationError,
)
from shared.observability import record_lock_operation, record_store_error, time_store_call, traced
from shared.structured_logger import StructuredLogger
from slot_lock.config import LockServiceConfig
from slot_lock.models import (
    AcquireResponse,
    ActiveLock,
    ActiveLocksResponse,
    HealthResponse,
    LockKey,
    LockRecord,
    MetricsResponse,
    RefreshResponse,
    ReleaseResponse,
    VerifyResponse,
)
from slot_lock.store import LockStore, wall_clock_ms
from slot_lock.validation import (
    clamp_ttl,
    require,
    validate_duration,
    validate_identifier,
    validate_lock_id,
    validate_slot,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _slot_attributes(args, kwargs):
    # args[0] is the service instance
    return {"tenant_id": args[1] if len(args) > 1 else kwargs.get("tenant_id")}


class LockService:
    """
    Booking slot lock operations.

    Customer operations: acquire, verify, refresh, release.
    Admin operations: list_active, force_release, metrics, health.
    """

    def __init__(
        self,
        store: LockStore,
        config: LockServiceConfig,
        clock: Callable[[], int] = wall_clock_ms,
    ):
        self.store = store
        self.config = config
        self.clock = clock
        self.started_at = time.time()
        self.structured_logger = StructuredLogger(logger)

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _call_store(self, operation: str, call: Awaitable[T]) -> T:
        """Run one store round trip under the configured timeout."""
        try:
            async with time_store_call(operation):
                return await asyncio.wait_for(call, timeout=self.config.store_timeout_seconds)
        except asyncio.TimeoutError as e:
            record_store_error(operation)
            raise TransportError(
                f"Lock store timed out after {self.config.store_timeout_ms}ms during {operation}"
            ) from e
        except TransportError:
            record_store_error(operation)
            raise

    async def _count(self, counter: str):
        """Best-effort cluster counter; a failure here never fails the operation."""
        try:
            await asyncio.wait_for(
                self.store.increment_counter(counter), timeout=self.config.store_timeout_seconds
            )
        except (TransportError, asyncio.TimeoutError) as e:
            logger.warning(f"Failed to increment metric {counter}: {e}")

    async def _outcome(self, operation: str, outcome: str, counter: str, key: LockKey, lock_id=None, **extra):
        record_lock_operation(operation, outcome)
        await self._count(counter)
        if self.config.log_lock_events:
            level = logging.WARNING if outcome == REASON_LOCK_MISMATCH else logging.INFO
            self.structured_logger.lock_event(
                operation, outcome, key.to_key(), lock_id=lock_id, extra=extra or None, level=level
            )

    async def _advisory_get(self, key: LockKey) -> Optional[LockRecord]:
        """
        Read the current record after the store has already refused a mutation.

        The store's answer stands, so a failed read yields None instead of
        turning the refusal into a transport error.
        """
        try:
            return await self._call_store("get", self.store.get(key.to_key()))
        except TransportError as e:
            logger.warning(f"Advisory read of {key.to_key()} failed: {e.message}")
            return None

    async def _failure_reason(self, key: LockKey, lock_id: str) -> str:
        """
        Advisory read after a failed ownership-checked mutation.

        Distinguishes a live record owned by someone else from an absent one.
        Never authoritative: the record may change right after this read.
        """
        current = await self._advisory_get(key)
        if current is not None and current.lock_id != lock_id:
            return REASON_LOCK_MISMATCH
        return REASON_NOT_FOUND

    # ========================================================================
    # Customer operations
    # ========================================================================

    @traced("lock.acquire", attributes_fn=_slot_attributes)
    async def acquire(
        self,
        tenant_id: str,
        resource_id: str,
        date: str,
        start_time: str,
        duration_min: Optional[int] = None,
        ttl_ms: Optional[int] = None,
    ) -> AcquireResponse:
        """
        Try to reserve a slot.

        Returns:
            {locked: true, lockId, expiresAt, expiresIn} or
            {locked: false, reason: "already_locked", remainingTTL}

        Raises:
            ValidationError: malformed input
            TransportError: store unreachable or timed out
        """
        key = validate_slot(tenant_id, resource_id, date, start_time)
        require(validate_duration(duration_min))
        ttl = clamp_ttl(
            ttl_ms, self.config.default_ttl_ms, self.config.min_ttl_ms, self.config.max_ttl_ms
        )

        now = self.clock()
        record = LockRecord(
            lock_id=uuid.uuid4().hex,
            tenant_id=tenant_id,
            resource_id=resource_id,
            date=date,
            start_time=start_time,
            created_at=now,
            expires_at=now + ttl,
            ttl_ms=ttl,
            duration_min=duration_min,
        )

        acquired = await self._call_store(
            "set_if_absent", self.store.set_if_absent(key.to_key(), record, ttl)
        )

        if acquired:
            await self._outcome("acquire", "success", "acquire_success", key, record.lock_id, ttl_ms=ttl)
            return AcquireResponse(
                locked=True,
                lock_id=record.lock_id,
                expires_at=record.expires_at,
                expires_in=ttl,
            )

        current = await self._advisory_get(key)
        remaining = current.remaining_ms(self.clock()) if current else 0
        await self._outcome("acquire", "conflict", "acquire_conflict", key, remaining_ttl=remaining)
        return AcquireResponse(locked=False, reason=REASON_ALREADY_LOCKED, remaining_ttl=remaining)

    @traced("lock.verify", attributes_fn=_slot_attributes)
    async def verify(
        self, tenant_id: str, resource_id: str, date: str, start_time: str, lock_id: str
    ) -> VerifyResponse:
        """
        Confirm the caller still owns the slot. Read-only: never extends or releases.

        Checkout must call this immediately before committing an appointment.
        """
        key = validate_slot(tenant_id, resource_id, date, start_time)
        require(validate_lock_id(lock_id))

        current = await self._call_store("get", self.store.get(key.to_key()))

        if current is None:
            await self._outcome("verify", "not_found", "verify_invalid", key, lock_id)
            return VerifyResponse(valid=False, reason=REASON_NOT_FOUND)

        if current.lock_id != lock_id:
            await self._outcome("verify", "mismatch", "verify_invalid", key, lock_id)
            return VerifyResponse(valid=False, reason=REASON_LOCK_MISMATCH)

        await self._outcome("verify", "valid", "verify_valid", key, lock_id)
        return VerifyResponse(
            valid=True,
            expires_at=current.expires_at,
            expires_in=current.remaining_ms(self.clock()),
        )

    @traced("lock.refresh", attributes_fn=_slot_attributes)
    async def refresh(
        self,
        tenant_id: str,
        resource_id: str,
        date: str,
        start_time: str,
        lock_id: str,
        ttl_ms: Optional[int] = None,
    ) -> RefreshResponse:
        """Extend a lock the caller owns. expiresAt never moves backward."""
        key = validate_slot(tenant_id, resource_id, date, start_time)
        require(validate_lock_id(lock_id))
        ttl = clamp_ttl(
            ttl_ms, self.config.default_ttl_ms, self.config.min_ttl_ms, self.config.max_ttl_ms
        )

        now = self.clock()
        record = await self._call_store(
            "compare_and_extend", self.store.compare_and_extend(key.to_key(), lock_id, ttl, now)
        )

        if record is None:
            reason = await self._failure_reason(key, lock_id)
            await self._outcome("refresh", reason, "refresh_failed", key, lock_id)
            return RefreshResponse(refreshed=False, reason=reason)

        await self._outcome("refresh", "success", "refresh_success", key, lock_id, ttl_ms=ttl)
        return RefreshResponse(
            refreshed=True,
            expires_at=record.expires_at,
            expires_in=record.remaining_ms(now),
        )

    @traced("lock.release", attributes_fn=_slot_attributes)
    async def release(
        self, tenant_id: str, resource_id: str, date: str, start_time: str, lock_id: str
    ) -> ReleaseResponse:
        """
        Release a lock the caller owns.

        Releasing an absent lock reports `not_found`; callers treat it as done
        since the desired end state (no lock) already holds.
        """
        key = validate_slot(tenant_id, resource_id, date, start_time)
        require(validate_lock_id(lock_id))

        deleted = await self._call_store(
            "compare_and_delete", self.store.compare_and_delete(key.to_key(), lock_id)
        )

        if not deleted:
            reason = await self._failure_reason(key, lock_id)
            await self._outcome("release", reason, "release_not_found", key, lock_id)
            return ReleaseResponse(released=False, reason=reason)

        await self._outcome("release", "success", "release_success", key, lock_id)
        return ReleaseResponse(released=True)

    # ========================================================================
    # Admin operations
    # ========================================================================

    async def list_active(self, tenant_id: str, limit: int = 100) -> ActiveLocksResponse:
        """Live locks for one tenant, soonest expiry first."""
        require(validate_identifier(tenant_id, "tenantId"))
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit must be a positive integer")
        limit = min(limit, self.config.max_list_limit)

        records = await self._call_store(
            "list_by_prefix", self.store.list_by_prefix(tenant_id, limit=limit)
        )
        now = self.clock()
        locks = [
            ActiveLock(
                lock_id=r.lock_id,
                tenant_id=r.tenant_id,
                resource_id=r.resource_id,
                date=r.date,
                start_time=r.start_time,
                created_at=r.created_at,
                expires_at=r.expires_at,
                ttl_ms=r.ttl_ms,
                duration_min=r.duration_min,
                remaining_ms=r.remaining_ms(now),
            )
            for r in records
        ]
        return ActiveLocksResponse(tenant_id=tenant_id, count=len(locks), locks=locks)

    @traced("lock.force_release", attributes_fn=_slot_attributes)
    async def force_release(
        self, tenant_id: str, resource_id: str, date: str, start_time: str
    ) -> ReleaseResponse:
        """Delete a slot's lock regardless of owner. The old lockId stops working immediately."""
        key = validate_slot(tenant_id, resource_id, date, start_time)

        existed = await self._call_store(
            "delete_unconditional", self.store.delete_unconditional(key.to_key())
        )
        logger.warning(f"Admin force-release on {key.to_key()} (existed={existed})")
        await self._outcome("force_release", "success", "force_release", key, existed=existed)
        return ReleaseResponse(released=True, existed=existed)

    async def metrics(self) -> MetricsResponse:
        counters = await self._call_store("read_counters", self.store.read_counters())
        active = await self._call_store("count_active", self.store.count_active())
        return MetricsResponse(
            counters=counters,
            active_locks=active,
            uptime_seconds=time.time() - self.started_at,
        )

    async def health(self) -> HealthResponse:
        """Store reachability; never raises."""
        start = time.perf_counter()
        details = {}
        try:
            connected = await self._call_store("ping", self.store.ping())
        except TransportError as e:
            connected = False
            details["error"] = e.message

        return HealthResponse(
            status="healthy" if connected else "unhealthy",
            store_backend=self.store.backend_name,
            store_connected=connected,
            latency_ms=(time.perf_counter() - start) * 1000,
            uptime_seconds=time.time() - self.started_at,
            details=details,
        )
