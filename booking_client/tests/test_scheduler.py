"""
Scheduler tests: virtual time ordering and real-loop timers.
"""

import asyncio

import pytest

from booking_client.scheduler import AsyncioScheduler, ManualScheduler


class TestManualScheduler:

    @pytest.mark.asyncio
    async def test_timers_fire_in_time_order(self):
        scheduler = ManualScheduler(start_ms=0)
        fired = []

        scheduler.call_every(300, lambda: fired.append(("slow", scheduler.now_ms())))
        scheduler.call_every(100, lambda: fired.append(("fast", scheduler.now_ms())))

        await scheduler.advance(300)

        assert fired == [("fast", 100), ("fast", 200), ("slow", 300), ("fast", 300)]
        assert scheduler.now_ms() == 300

    @pytest.mark.asyncio
    async def test_async_callbacks_awaited(self):
        scheduler = ManualScheduler()
        calls = []

        async def tick():
            await asyncio.sleep(0)
            calls.append(scheduler.now_ms())

        scheduler.call_every(50, tick)
        await scheduler.advance(120)

        assert calls == [50, 100]

    @pytest.mark.asyncio
    async def test_cancel_inside_callback(self):
        scheduler = ManualScheduler()
        calls = []
        handle = None

        def once():
            calls.append(scheduler.now_ms())
            handle.cancel()

        handle = scheduler.call_every(10, once)
        await scheduler.advance(100)

        assert calls == [10]
        assert handle.cancelled
        assert scheduler.active_timers == 0

    @pytest.mark.asyncio
    async def test_spawn_and_drain(self):
        scheduler = ManualScheduler()
        done = []

        async def work():
            done.append(True)

        scheduler.spawn(work())
        await scheduler.drain()

        assert done == [True]

    @pytest.mark.asyncio
    async def test_time_never_moves_backward(self):
        with pytest.raises(ValueError):
            await ManualScheduler().advance(-1)


class TestAsyncioScheduler:

    @pytest.mark.asyncio
    async def test_call_every_and_cancel(self):
        scheduler = AsyncioScheduler()
        ticks = []

        handle = scheduler.call_every(10, lambda: ticks.append(1))
        await asyncio.sleep(0.06)
        handle.cancel()
        count = len(ticks)
        await asyncio.sleep(0.03)

        assert count >= 2
        assert len(ticks) == count

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_timer_alive(self):
        scheduler = AsyncioScheduler()
        ticks = []

        def flaky():
            ticks.append(1)
            raise RuntimeError("boom")

        handle = scheduler.call_every(10, flaky)
        await asyncio.sleep(0.05)
        handle.cancel()

        assert len(ticks) >= 2

    def test_now_ms_is_epoch_ms(self):
        assert AsyncioScheduler().now_ms() > 1_600_000_000_000
