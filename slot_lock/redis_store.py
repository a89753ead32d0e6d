"""
Redis-backed Lock Store

- set_if_absent: SET key value NX PX ttl
- compare_and_extend / compare_and_delete: Lua scripts that decode the stored
  record, compare its lockId and mutate in one server-side step, so there is
  no gap between check and act
- TTL expiry: native Redis key expiry (PX)
- Counters: INCR on booking_lock_metrics:{name}

Every redis error is surfaced as TransportError; callers never see a store
failure as a grant or a denial.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import redis.asyncio as redis

from shared.errors import TransportError
from slot_lock.models import COUNTER_NAMES, KEY_PREFIX, KEY_SEPARATOR, METRICS_PREFIX, LockKey, LockRecord
from slot_lock.store import LockStore

logger = logging.getLogger(__name__)

SCAN_COUNT = 200

# KEYS[1] = lock key; ARGV[1] = lockId, ARGV[2] = ttl ms, ARGV[3] = now ms
COMPARE_AND_EXTEND_LUA = """
local raw = redis.call('GET', KEYS[1])
if not raw then
  return false
end
local record = cjson.decode(raw)
if record['lockId'] ~= ARGV[1] then
  return false
end
local ttl = tonumber(ARGV[2])
local remaining = redis.call('PTTL', KEYS[1])
if remaining < ttl then
  record['expiresAt'] = tonumber(ARGV[3]) + ttl
  record['ttlMs'] = ttl
  raw = cjson.encode(record)
  redis.call('SET', KEYS[1], raw, 'PX', ttl)
end
return raw
"""

# KEYS[1] = lock key; ARGV[1] = lockId
COMPARE_AND_DELETE_LUA = """
local raw = redis.call('GET', KEYS[1])
if not raw then
  return 0
end
local record = cjson.decode(raw)
if record['lockId'] ~= ARGV[1] then
  return 0
end
return redis.call('DEL', KEYS[1])
"""


def _decode(raw: Optional[str]) -> Optional[LockRecord]:
    if raw is None:
        return None
    return LockRecord.from_dict(json.loads(raw))


class RedisLockStore(LockStore):
    """Lock store shared by every service instance through one Redis."""

    backend_name = "redis"

    def __init__(self, client: redis.Redis):
        self.client = client
        self._extend_script = client.register_script(COMPARE_AND_EXTEND_LUA)
        self._delete_script = client.register_script(COMPARE_AND_DELETE_LUA)

    @asynccontextmanager
    async def _translate_errors(self, operation: str):
        try:
            yield
        except (redis.RedisError, OSError) as e:
            logger.error(f"Redis {operation} failed: {e}")
            raise TransportError(f"Lock store unavailable during {operation}") from e

    async def set_if_absent(self, key: str, record: LockRecord, ttl_ms: int) -> bool:
        async with self._translate_errors("set_if_absent"):
            result = await self.client.set(key, json.dumps(record.to_dict()), nx=True, px=ttl_ms)
        return bool(result)

    async def get(self, key: str) -> Optional[LockRecord]:
        async with self._translate_errors("get"):
            raw = await self.client.get(key)
        return _decode(raw)

    async def compare_and_extend(
        self, key: str, lock_id: str, ttl_ms: int, now_ms: int
    ) -> Optional[LockRecord]:
        async with self._translate_errors("compare_and_extend"):
            raw = await self._extend_script(keys=[key], args=[lock_id, ttl_ms, now_ms])
        return _decode(raw)

    async def compare_and_delete(self, key: str, lock_id: str) -> bool:
        async with self._translate_errors("compare_and_delete"):
            deleted = await self._delete_script(keys=[key], args=[lock_id])
        return int(deleted or 0) > 0

    async def delete_unconditional(self, key: str) -> bool:
        async with self._translate_errors("delete_unconditional"):
            deleted = await self.client.delete(key)
        return int(deleted or 0) > 0

    async def _scan_keys(self, pattern: str) -> List[str]:
        keys: List[str] = []
        cursor = 0
        while True:
            cursor, batch = await self.client.scan(cursor, match=pattern, count=SCAN_COUNT)
            keys.extend(batch)
            if cursor == 0:
                break
        return keys

    async def list_by_prefix(self, tenant_id: str, limit: Optional[int] = None) -> List[LockRecord]:
        async with self._translate_errors("list_by_prefix"):
            keys = await self._scan_keys(f"{LockKey.tenant_prefix(tenant_id)}*")
            values = await self.client.mget(keys) if keys else []

        # Keys that expired between SCAN and MGET come back as None
        records = [_decode(raw) for raw in values if raw is not None]
        records.sort(key=lambda r: r.expires_at)
        return records[:limit] if limit is not None else records

    async def count_active(self) -> int:
        async with self._translate_errors("count_active"):
            keys = await self._scan_keys(f"{KEY_PREFIX}{KEY_SEPARATOR}*")
        return len(keys)

    async def increment_counter(self, name: str) -> None:
        async with self._translate_errors("increment_counter"):
            await self.client.incr(f"{METRICS_PREFIX}{name}")

    async def read_counters(self) -> Dict[str, int]:
        keys = [f"{METRICS_PREFIX}{name}" for name in COUNTER_NAMES]
        async with self._translate_errors("read_counters"):
            values = await self.client.mget(keys)
        return {name: int(value or 0) for name, value in zip(COUNTER_NAMES, values)}

    async def ping(self) -> bool:
        async with self._translate_errors("ping"):
            return bool(await self.client.ping())
