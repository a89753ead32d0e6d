"""
Client Lock Lifecycle Manager

Drives one booking session's slot lock:

    IDLE -> ACQUIRING -> LOCKED -> RELEASED | EXPIRED | FAILED
    FAILED -> IDLE (as soon as the failure has been recorded)

While LOCKED, two timers run on the injected Scheduler: a countdown that
expires the lock locally once expiresAt has passed, and an auto-refresh that
extends it on the server. A session holds at most one lock at a time.
"""

import asyncio
import logging
import uuid
from typing import Callable, List, Optional

from booking_client.api_client import LockClient
from booking_client.models import HeldLock, LifecycleConfig, LockState, SlotSelection
from booking_client.scheduler import Scheduler, TimerHandle
from shared.errors import ConflictError, LockError, NotFoundError, TransportError
from shared.structured_logger import StructuredLogger

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "This slot is currently being booked by another customer. Please choose another time."
EXPIRED_MESSAGE = "Your booking reservation has expired. Please select a time slot again."
RETRY_MESSAGE = "Failed to secure booking slot. Please try again."

StateListener = Callable[[LockState, LockState, str], None]


class SlotLockManager:
    """
    Lock lifecycle for one booking session.

    Business "no" answers never raise: they land in `last_error` as a
    ConflictError/NotFoundError value and the state machine moves on.
    """

    def __init__(
        self,
        client: LockClient,
        scheduler: Scheduler,
        config: Optional[LifecycleConfig] = None,
        session_id: Optional[str] = None,
    ):
        self.client = client
        self.scheduler = scheduler
        self.config = config or LifecycleConfig()
        self.session_id = session_id or uuid.uuid4().hex

        self.state = LockState.IDLE
        self.held: Optional[HeldLock] = None
        self.last_error: Optional[LockError] = None

        self._op_lock = asyncio.Lock()
        self._closed = False
        self._timers: List[TimerHandle] = []
        self._listeners: List[StateListener] = []
        self._structured_logger = StructuredLogger(logger)

    # ========================================================================
    # State bookkeeping
    # ========================================================================

    def add_listener(self, listener: StateListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _transition(self, new_state: LockState, trigger: str):
        old_state = self.state
        self.state = new_state
        self._structured_logger.state_transition(
            self.session_id, old_state.value, new_state.value, trigger
        )
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state, trigger)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    def _start_timers(self):
        self._stop_timers()
        self._timers.append(
            self.scheduler.call_every(self.config.countdown_interval_ms, self._on_countdown)
        )
        if self.config.auto_refresh:
            self._timers.append(
                self.scheduler.call_every(self.config.refresh_interval_ms, self._on_refresh_tick)
            )

    def _stop_timers(self):
        for timer in self._timers:
            timer.cancel()
        self._timers = []

    def _expire(self, trigger: str, reason: Optional[str] = None):
        self._stop_timers()
        self.held = None
        self.last_error = NotFoundError(EXPIRED_MESSAGE, reason=reason)
        self._transition(LockState.EXPIRED, trigger)

    async def _release_quietly(self, held: HeldLock):
        """Release on the server; a failure is logged, never surfaced."""
        try:
            result = await self.client.release(held.slot, held.lock_id)
            if not result.released:
                logger.info(f"Release of {held.lock_id} reported {result.reason}")
        except LockError as e:
            logger.warning(f"Failed to release lock {held.lock_id}: {e.message}")

    async def _release_held(self, trigger: str):
        held = self.held
        self._stop_timers()
        self.held = None
        self._transition(LockState.RELEASED, trigger)
        if held is not None:
            await self._release_quietly(held)

    # ========================================================================
    # Public operations
    # ========================================================================

    async def select_slot(self, slot: SlotSelection) -> Optional[HeldLock]:
        """
        Lock the slot the customer just picked, releasing any previous one first.

        Returns:
            The held lock, or None with `last_error` describing why.
        """
        async with self._op_lock:
            if self._closed:
                logger.warning(f"Session {self.session_id} is closed, not locking a new slot")
                return None

            if self.held is not None:
                await self._release_held("reselect")

            self.last_error = None
            self._transition(LockState.ACQUIRING, "select_slot")

            try:
                result = await self.client.acquire(slot, ttl_ms=self.config.ttl_ms)
            except LockError as e:
                logger.warning(f"Acquire failed for session {self.session_id}: {e.message}")
                self.last_error = e if not isinstance(e, TransportError) else TransportError(RETRY_MESSAGE)
                self._transition(LockState.IDLE, e.kind.value)
                return None

            if not result.locked:
                self.last_error = ConflictError(CONFLICT_MESSAGE, remaining_ttl_ms=result.remaining_ttl or 0)
                self._transition(LockState.FAILED, result.reason or "already_locked")
                self._transition(LockState.IDLE, "failure_recorded")
                return None

            held = HeldLock(
                slot=slot,
                lock_id=result.lock_id,
                expires_at=result.expires_at,
                expires_in=result.expires_in,
            )

            # Torn down while the acquire was in flight
            if self._closed:
                self._transition(LockState.RELEASED, "close")
                await self._release_quietly(held)
                return None

            self.held = held
            self._transition(LockState.LOCKED, "acquired")
            self._start_timers()
            return self.held

    async def refresh(self) -> bool:
        """
        Extend the held lock. refreshed:false is authoritative and expires the
        lock at once; a transport failure leaves it LOCKED for the next tick.
        """
        held = self.held
        if held is None or self.state != LockState.LOCKED:
            return False

        try:
            result = await self.client.refresh(held.slot, held.lock_id, ttl_ms=self.config.ttl_ms)
        except LockError as e:
            logger.warning(f"Refresh of {held.lock_id} failed, will retry: {e.message}")
            self.last_error = e
            return False

        # Released or reselected while the call was in flight
        if self.held is not held:
            return False

        if not result.refreshed:
            self._expire("refresh_rejected", reason=result.reason)
            return False

        held.expires_at = result.expires_at
        held.expires_in = result.expires_in
        if isinstance(self.last_error, TransportError):
            self.last_error = None
        return True

    async def release(self) -> bool:
        """Explicit release (back navigation, cancel). Returns False when nothing was held."""
        async with self._op_lock:
            if self.held is None:
                return False
            await self._release_held("release")
            return True

    def close(self):
        """
        Teardown: stop timers and release in the background without waiting.

        An acquire still in flight releases its lock as soon as it lands, and
        no further slot can be selected on this session.
        """
        self._closed = True
        held = self.held
        self._stop_timers()
        if held is None:
            return
        self.held = None
        self._transition(LockState.RELEASED, "close")
        self.scheduler.spawn(self._release_quietly(held))

    async def confirm_for_checkout(self) -> Optional[HeldLock]:
        """
        Verify ownership right before the appointment is committed.

        Returns the held lock when the server confirms it, None otherwise.
        Checkout must not commit on None.
        """
        held = self.held
        if held is None or self.state != LockState.LOCKED:
            return None

        try:
            result = await self.client.verify(held.slot, held.lock_id)
        except LockError as e:
            logger.warning(f"Verify of {held.lock_id} failed: {e.message}")
            self.last_error = e
            return None

        if self.held is not held:
            return None

        if not result.valid:
            self._expire("verify_failed", reason=result.reason)
            return None

        held.expires_at = result.expires_at
        return held

    # ========================================================================
    # Timers
    # ========================================================================

    def _on_countdown(self):
        if self.held is not None and self.held.expires_at <= self.scheduler.now_ms():
            logger.info(f"Lock {self.held.lock_id} expired locally")
            self._expire("countdown")

    async def _on_refresh_tick(self):
        await self.refresh()

    # ========================================================================
    # Display helpers
    # ========================================================================

    @property
    def remaining_ms(self) -> int:
        if self.held is None:
            return 0
        return max(0, self.held.expires_at - self.scheduler.now_ms())

    @property
    def is_locked(self) -> bool:
        return self.state == LockState.LOCKED

    @property
    def is_expiring_soon(self) -> bool:
        return self.is_locked and self.remaining_ms < self.config.expiring_soon_ms

    def format_remaining_time(self) -> str:
        """Remaining time as m:ss"""
        remaining = self.remaining_ms
        minutes = remaining // 60_000
        seconds = (remaining % 60_000) // 1000
        return f"{minutes}:{seconds:02d}"

    def remaining_percentage(self) -> float:
        """Remaining time as a share of the last granted window (progress bars)."""
        if self.held is None or not self.held.expires_in:
            return 0.0
        return max(0.0, min(100.0, self.remaining_ms / self.held.expires_in * 100))

    def clear_error(self):
        self.last_error = None
