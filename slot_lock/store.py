"""
Lock Store substrate.

The store is the sole source of mutual-exclusion correctness: every mutating
primitive checks the key and the presented lockId in one atomic step, and an
expired record reads as absent without any explicit delete.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from slot_lock.models import LockKey, LockRecord

logger = logging.getLogger(__name__)


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class LockStore(ABC):
    """Key/value substrate with set-if-absent, compare-and-mutate and TTL expiry."""

    backend_name = "abstract"

    @abstractmethod
    async def set_if_absent(self, key: str, record: LockRecord, ttl_ms: int) -> bool:
        """Insert `record` only if no live record exists for `key`."""

    @abstractmethod
    async def get(self, key: str) -> Optional[LockRecord]:
        """Read the live record for `key`; expired records read as None."""

    @abstractmethod
    async def compare_and_extend(
        self, key: str, lock_id: str, ttl_ms: int, now_ms: int
    ) -> Optional[LockRecord]:
        """
        Extend the live record owned by `lock_id` to expire at now_ms + ttl_ms.

        expiresAt never moves backward: if the record already outlives the
        requested TTL it is left unchanged. Returns the resulting record, or
        None when the key is absent/expired or owned by another lockId.
        """

    @abstractmethod
    async def compare_and_delete(self, key: str, lock_id: str) -> bool:
        """Delete the live record only if it is owned by `lock_id`."""

    @abstractmethod
    async def delete_unconditional(self, key: str) -> bool:
        """Delete the record regardless of owner (admin force-release)."""

    @abstractmethod
    async def list_by_prefix(self, tenant_id: str, limit: Optional[int] = None) -> List[LockRecord]:
        """Live records for one tenant, soonest expiry first."""

    @abstractmethod
    async def count_active(self) -> int:
        """Number of live records across all tenants."""

    @abstractmethod
    async def increment_counter(self, name: str) -> None:
        """Bump a cluster-wide operation counter."""

    @abstractmethod
    async def read_counters(self) -> Dict[str, int]:
        """Current values of all operation counters."""

    @abstractmethod
    async def ping(self) -> bool:
        """True when the store is reachable."""


class InMemoryLockStore(LockStore):
    """
    Process-local lock store.

    No method awaits between its check and its mutation, so every primitive is
    atomic with respect to other coroutines on the same event loop. Suitable
    for single-instance deployments and tests; it cannot coordinate several
    service processes.
    """

    backend_name = "memory"

    def __init__(self, clock: Callable[[], int] = wall_clock_ms):
        self._clock = clock
        self._records: Dict[str, LockRecord] = {}
        self._counters: Counter = Counter()

    def _live(self, key: str) -> Optional[LockRecord]:
        record = self._records.get(key)
        if record is None:
            return None
        if not record.is_live(self._clock()):
            # Lazy reclamation of an expired record
            del self._records[key]
            return None
        return record

    async def set_if_absent(self, key: str, record: LockRecord, ttl_ms: int) -> bool:
        if self._live(key) is not None:
            return False
        self._records[key] = replace(record, ttl_ms=ttl_ms, expires_at=record.created_at + ttl_ms)
        return True

    async def get(self, key: str) -> Optional[LockRecord]:
        record = self._live(key)
        return replace(record) if record else None

    async def compare_and_extend(
        self, key: str, lock_id: str, ttl_ms: int, now_ms: int
    ) -> Optional[LockRecord]:
        record = self._live(key)
        if record is None or record.lock_id != lock_id:
            return None
        new_expires_at = now_ms + ttl_ms
        if new_expires_at > record.expires_at:
            record.expires_at = new_expires_at
            record.ttl_ms = ttl_ms
        return replace(record)

    async def compare_and_delete(self, key: str, lock_id: str) -> bool:
        record = self._live(key)
        if record is None or record.lock_id != lock_id:
            return False
        del self._records[key]
        return True

    async def delete_unconditional(self, key: str) -> bool:
        existed = self._live(key) is not None
        self._records.pop(key, None)
        return existed

    async def list_by_prefix(self, tenant_id: str, limit: Optional[int] = None) -> List[LockRecord]:
        prefix = LockKey.tenant_prefix(tenant_id)
        records = []
        for key in list(self._records):
            if not key.startswith(prefix):
                continue
            record = self._live(key)
            if record is not None:
                records.append(replace(record))
        records.sort(key=lambda r: r.expires_at)
        return records[:limit] if limit is not None else records

    async def count_active(self) -> int:
        return sum(1 for key in list(self._records) if self._live(key) is not None)

    async def increment_counter(self, name: str) -> None:
        self._counters[name] += 1

    async def read_counters(self) -> Dict[str, int]:
        return dict(self._counters)

    async def ping(self) -> bool:
        return True
