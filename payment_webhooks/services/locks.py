import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict
from redis.asyncio import Redis
from payment_webhooks.core.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class KeyedLock:
    """
    Per-key asyncio locks for a single process.

    Unrelated keys never wait on each other. An entry is dropped as soon as
    nobody holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


# only the owner of the token may delete the key
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisLock:
    """
    Cross-process per-key lock: SET lock:<key> <token> NX EX <ttl>.

    The TTL frees locks held by crashed workers. Callers bound the wait
    with their own timeout; this class just keeps polling.
    """

    def __init__(self, redis: Redis, ttl: int = 30, poll_interval: float = 0.05):
        self.redis = redis
        self.ttl = ttl
        self.poll_interval = poll_interval

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock_key = f"lock:{key}"
        token = str(uuid.uuid4())
        try:
            while not await self.redis.set(lock_key, token, nx=True, ex=self.ttl):
                await asyncio.sleep(self.poll_interval)
        except Exception as e:
            logger.error(f"failed to acquire {lock_key}: {e}", exc_info=True)
            raise StoreUnavailableError("Lock backend unavailable")
        try:
            yield
        finally:
            try:
                await self.redis.eval(RELEASE_LOCK_SCRIPT, 1, lock_key, token)
            except Exception as e:
                # the TTL will free it
                logger.warning(f"failed to release {lock_key}: {e}")
