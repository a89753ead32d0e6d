"""
Lock Service tests: mutual exclusion, ownership, refresh, release, expiry
and admin operations, against the in-memory store on a fake clock.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from shared.errors import ErrorKind, TransportError, ValidationError
from slot_lock.service import LockService

SLOT = ("salon-1", "stylist-42", "2025-12-30", "14:00")


class TestAcquire:

    @pytest.mark.asyncio
    async def test_acquire_success(self, lock_service, clock):
        result = await lock_service.acquire(*SLOT, duration_min=45)

        assert result.locked
        assert len(result.lock_id) == 32
        assert result.expires_in == 120_000
        assert result.expires_at == clock() + 120_000

    @pytest.mark.asyncio
    async def test_conflict_reports_remaining_ttl(self, lock_service, clock):
        await lock_service.acquire(*SLOT)
        clock.advance(20_000)

        result = await lock_service.acquire(*SLOT)

        assert not result.locked
        assert result.reason == "already_locked"
        assert result.remaining_ttl == 100_000
        assert result.lock_id is None

    @pytest.mark.asyncio
    async def test_ttl_is_clamped(self, lock_service):
        result = await lock_service.acquire(*SLOT, ttl_ms=10 ** 9)
        assert result.expires_in == 600_000

    @pytest.mark.asyncio
    async def test_lock_ids_never_reused(self, lock_service):
        seen = set()
        for _ in range(20):
            result = await lock_service.acquire(*SLOT)
            seen.add(result.lock_id)
            await lock_service.release(*SLOT, result.lock_id)
        assert len(seen) == 20

    @pytest.mark.asyncio
    async def test_validation_error(self, lock_service):
        with pytest.raises(ValidationError) as exc_info:
            await lock_service.acquire("salon-1", "stylist-42", "2025-13-01", "14:00")
        assert exc_info.value.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_concurrent_acquires_exactly_one_winner(self, lock_service):
        results = await asyncio.gather(*(lock_service.acquire(*SLOT) for _ in range(25)))

        winners = [r for r in results if r.locked]
        losers = [r for r in results if not r.locked]
        assert len(winners) == 1
        assert len(losers) == 24
        assert all(r.reason == "already_locked" for r in losers)

    @pytest.mark.asyncio
    async def test_distinct_slots_independent(self, lock_service):
        a = await lock_service.acquire("salon-1", "stylist-42", "2025-12-30", "14:00")
        b = await lock_service.acquire("salon-1", "stylist-42", "2025-12-30", "14:30")
        c = await lock_service.acquire("salon-2", "stylist-42", "2025-12-30", "14:00")
        assert a.locked and b.locked and c.locked


class TestOwnership:

    @pytest.mark.asyncio
    async def test_verify(self, lock_service, clock):
        held = await lock_service.acquire(*SLOT)
        clock.advance(10_000)

        ok = await lock_service.verify(*SLOT, held.lock_id)
        assert ok.valid
        assert ok.expires_in == 110_000

        wrong = await lock_service.verify(*SLOT, "someone-else")
        assert not wrong.valid
        assert wrong.reason == "lock_mismatch"

    @pytest.mark.asyncio
    async def test_verify_never_extends(self, lock_service):
        held = await lock_service.acquire(*SLOT)
        before = (await lock_service.store.get(held_key())).expires_at
        await lock_service.verify(*SLOT, held.lock_id)
        assert (await lock_service.store.get(held_key())).expires_at == before

    @pytest.mark.asyncio
    async def test_foreign_lock_id_cannot_refresh_or_release(self, lock_service):
        held = await lock_service.acquire(*SLOT)

        refreshed = await lock_service.refresh(*SLOT, "intruder")
        released = await lock_service.release(*SLOT, "intruder")

        assert not refreshed.refreshed and refreshed.reason == "lock_mismatch"
        assert not released.released and released.reason == "lock_mismatch"
        assert (await lock_service.verify(*SLOT, held.lock_id)).valid


class TestRefreshAndRelease:

    @pytest.mark.asyncio
    async def test_refresh_extends(self, lock_service, clock):
        held = await lock_service.acquire(*SLOT)
        clock.advance(30_000)

        result = await lock_service.refresh(*SLOT, held.lock_id)

        assert result.refreshed
        assert result.expires_at == clock() + 120_000
        assert result.expires_in == 120_000

    @pytest.mark.asyncio
    async def test_refresh_never_moves_backward(self, lock_service):
        held = await lock_service.acquire(*SLOT, ttl_ms=600_000)

        result = await lock_service.refresh(*SLOT, held.lock_id, ttl_ms=1_000)

        assert result.refreshed
        assert result.expires_at == held.expires_at

    @pytest.mark.asyncio
    async def test_refresh_after_release_is_not_found(self, lock_service):
        held = await lock_service.acquire(*SLOT)
        assert (await lock_service.release(*SLOT, held.lock_id)).released

        result = await lock_service.refresh(*SLOT, held.lock_id)

        assert not result.refreshed
        assert result.reason == "not_found"

    @pytest.mark.asyncio
    async def test_release_absent_lock(self, lock_service):
        result = await lock_service.release(*SLOT, "never-held")
        assert not result.released
        assert result.reason == "not_found"

    @pytest.mark.asyncio
    async def test_pure_ttl_expiry(self, lock_service, clock):
        held = await lock_service.acquire(*SLOT, ttl_ms=5_000)
        clock.advance(5_000)

        assert (await lock_service.verify(*SLOT, held.lock_id)).reason == "not_found"
        assert (await lock_service.refresh(*SLOT, held.lock_id)).reason == "not_found"

        again = await lock_service.acquire(*SLOT)
        assert again.locked
        assert again.lock_id != held.lock_id


class TestCheckoutScenario:

    @pytest.mark.asyncio
    async def test_two_customers_one_slot(self, lock_service, clock):
        """Customer A holds the slot through checkout; B is turned away until A releases."""
        a = await lock_service.acquire(*SLOT, duration_min=60)
        b = await lock_service.acquire(*SLOT, duration_min=60)
        assert a.locked and not b.locked

        clock.advance(30_000)
        assert (await lock_service.refresh(*SLOT, a.lock_id)).refreshed
        assert (await lock_service.verify(*SLOT, a.lock_id)).valid
        assert (await lock_service.release(*SLOT, a.lock_id)).released

        b_retry = await lock_service.acquire(*SLOT, duration_min=60)
        assert b_retry.locked


class TestAdmin:

    @pytest.mark.asyncio
    async def test_force_release_invalidates_owner(self, lock_service):
        held = await lock_service.acquire(*SLOT)

        result = await lock_service.force_release(*SLOT)

        assert result.released and result.existed
        assert (await lock_service.verify(*SLOT, held.lock_id)).reason == "not_found"
        assert (await lock_service.refresh(*SLOT, held.lock_id)).reason == "not_found"

    @pytest.mark.asyncio
    async def test_force_release_absent(self, lock_service):
        result = await lock_service.force_release(*SLOT)
        assert result.released and not result.existed

    @pytest.mark.asyncio
    async def test_list_active(self, lock_service, clock):
        await lock_service.acquire("salon-1", "stylist-42", "2025-12-30", "15:00", ttl_ms=300_000)
        await lock_service.acquire("salon-1", "stylist-42", "2025-12-30", "14:00", ttl_ms=60_000)
        await lock_service.acquire("salon-2", "stylist-42", "2025-12-30", "14:00")

        listing = await lock_service.list_active("salon-1")

        assert listing.count == 2
        assert [lock.start_time for lock in listing.locks] == ["14:00", "15:00"]
        assert listing.locks[0].remaining_ms == 60_000

    @pytest.mark.asyncio
    async def test_list_active_rejects_bad_limit(self, lock_service):
        with pytest.raises(ValidationError):
            await lock_service.list_active("salon-1", limit=0)

    @pytest.mark.asyncio
    async def test_metrics(self, lock_service):
        held = await lock_service.acquire(*SLOT)
        await lock_service.acquire(*SLOT)
        await lock_service.verify(*SLOT, held.lock_id)

        metrics = await lock_service.metrics()

        assert metrics.counters["acquire_success"] == 1
        assert metrics.counters["acquire_conflict"] == 1
        assert metrics.counters["verify_valid"] == 1
        assert metrics.active_locks == 1

    @pytest.mark.asyncio
    async def test_health(self, lock_service):
        health = await lock_service.health()
        assert health.status == "healthy"
        assert health.store_backend == "memory"
        assert health.store_connected


class TestStoreFailures:

    @pytest.mark.asyncio
    async def test_store_timeout_is_transport_error(self, memory_store, test_config, clock):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        memory_store.set_if_absent = hang
        service = LockService(memory_store, test_config, clock=clock)

        with pytest.raises(TransportError) as exc_info:
            await service.acquire(*SLOT)
        assert exc_info.value.kind == ErrorKind.TRANSPORT

    @pytest.mark.asyncio
    async def test_store_error_is_never_a_denial(self, memory_store, test_config, clock):
        memory_store.compare_and_delete = AsyncMock(side_effect=TransportError("Lock store unavailable"))
        service = LockService(memory_store, test_config, clock=clock)

        with pytest.raises(TransportError):
            await service.release(*SLOT, "lock-a")

    @pytest.mark.asyncio
    async def test_failed_read_after_conflict_keeps_denial(self, lock_service):
        await lock_service.acquire(*SLOT)
        lock_service.store.get = AsyncMock(side_effect=TransportError("Lock store unavailable"))

        result = await lock_service.acquire(*SLOT)

        assert not result.locked
        assert result.reason == "already_locked"
        assert result.remaining_ttl == 0

    @pytest.mark.asyncio
    async def test_failed_read_after_refused_refresh_keeps_denial(self, lock_service):
        await lock_service.acquire(*SLOT)
        lock_service.store.get = AsyncMock(side_effect=TransportError("Lock store unavailable"))

        refreshed = await lock_service.refresh(*SLOT, "not-the-owner")
        released = await lock_service.release(*SLOT, "not-the-owner")

        assert not refreshed.refreshed
        assert refreshed.reason == "not_found"
        assert not released.released
        assert released.reason == "not_found"

    @pytest.mark.asyncio
    async def test_counter_failure_does_not_fail_operation(self, memory_store, test_config, clock):
        memory_store.increment_counter = AsyncMock(side_effect=TransportError("down"))
        service = LockService(memory_store, test_config, clock=clock)

        result = await service.acquire(*SLOT)
        assert result.locked

    @pytest.mark.asyncio
    async def test_health_reports_unreachable_store(self, memory_store, test_config, clock):
        memory_store.ping = AsyncMock(side_effect=TransportError("Lock store unavailable during ping"))
        service = LockService(memory_store, test_config, clock=clock)

        health = await service.health()

        assert health.status == "unhealthy"
        assert not health.store_connected
        assert "ping" in health.details["error"]


def held_key():
    return "booking_lock:" + ":".join(SLOT)
