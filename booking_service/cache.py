"""
Short-lived key/value state: login OTPs, processed event ids and vendor offer
locks. Each comes in a redis flavour for deployments and an in-memory flavour
(with an injectable clock) for dev and tests.
"""
import time
from typing import Callable

import redis.asyncio as redis

# compare-and-delete: only the booking holding the offer may release it
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class ExpiringCache:
    async def put(self, key: str, value: str, ttl_seconds: float) -> None:
        raise NotImplementedError

    async def take_if_valid(self, key: str) -> str | None:
        """Return and remove the value, or None when absent or expired."""
        raise NotImplementedError

    async def add_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        raise NotImplementedError


class InMemoryCache(ExpiringCache):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._items: dict[str, tuple[str, float]] = {}

    def _live(self, key: str) -> str | None:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._items[key]
            return None
        return value

    def _purge(self) -> None:
        now = self._clock()
        for key in [k for k, (_, expires_at) in self._items.items() if now >= expires_at]:
            del self._items[key]

    def __len__(self) -> int:
        return len(self._items)

    async def put(self, key, value, ttl_seconds):
        # keys that are never read again still have to go
        self._purge()
        self._items[key] = (value, self._clock() + ttl_seconds)

    async def take_if_valid(self, key):
        value = self._live(key)
        if value is not None:
            del self._items[key]
        return value

    async def add_if_absent(self, key, value, ttl_seconds):
        if self._live(key) is not None:
            return False
        await self.put(key, value, ttl_seconds)
        return True


class RedisCache(ExpiringCache):
    def __init__(self, client: redis.Redis, prefix: str):
        self._client = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def put(self, key, value, ttl_seconds):
        await self._client.set(self._key(key), value, ex=max(1, int(ttl_seconds)))

    async def take_if_valid(self, key):
        return await self._client.getdel(self._key(key))

    async def add_if_absent(self, key, value, ttl_seconds):
        return bool(await self._client.set(self._key(key), value, ex=max(1, int(ttl_seconds)), nx=True))


class OfferLocks:
    """
    A vendor holds at most one outstanding offer. acquire is atomic and
    re-entrant for the booking that already holds the offer.
    """

    async def acquire(self, vendor_id: int, booking_id: int, ttl_seconds: float) -> bool:
        raise NotImplementedError

    async def release(self, vendor_id: int, booking_id: int) -> None:
        raise NotImplementedError


class InMemoryOfferLocks(OfferLocks):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._held: dict[int, tuple[int, float]] = {}

    async def acquire(self, vendor_id, booking_id, ttl_seconds):
        now = self._clock()
        held = self._held.get(vendor_id)
        if held and held[1] > now and held[0] != booking_id:
            return False
        self._held[vendor_id] = (booking_id, now + ttl_seconds)
        return True

    async def release(self, vendor_id, booking_id):
        held = self._held.get(vendor_id)
        if held and held[0] == booking_id:
            del self._held[vendor_id]


class RedisOfferLocks(OfferLocks):
    def __init__(self, client: redis.Redis):
        self._client = client

    @staticmethod
    def _key(vendor_id: int) -> str:
        return f"vendor_offer:{vendor_id}"

    async def acquire(self, vendor_id, booking_id, ttl_seconds):
        key = self._key(vendor_id)
        ttl = max(1, int(ttl_seconds))
        if await self._client.set(key, str(booking_id), ex=ttl, nx=True):
            return True
        holder = await self._client.get(key)
        if holder == str(booking_id):
            await self._client.expire(key, ttl)
            return True
        return False

    async def release(self, vendor_id, booking_id):
        await self._client.eval(_RELEASE_SCRIPT, 1, self._key(vendor_id), str(booking_id))
