"""
Key/value store adapters.

RedisStore wraps the shared Redis node used for cart storage. InMemoryStore
keeps keys in process and is selected with a ``memory://`` URL for local
development and tests. Both raise StoreUnreachableError for transport
failures and KeyNotFoundError when an operation needs an existing key.
"""

import logging
import time
from typing import Any, Awaitable, Callable, Optional, Protocol

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

MEMORY_URL_SCHEME = "memory://"

# Compare-and-set: write only if the key still holds the value read earlier.
# ARGV[1] == "1" means the caller expects the key to be absent.
_COMPARE_AND_SET_LUA = """
local current = redis.call('GET', KEYS[1])
if ARGV[1] == '1' then
    if current then
        return 0
    end
elseif current ~= ARGV[2] then
    return 0
end
if tonumber(ARGV[4]) > 0 then
    redis.call('SET', KEYS[1], ARGV[3], 'EX', ARGV[4])
else
    redis.call('SET', KEYS[1], ARGV[3])
end
return 1
"""


class StoreError(Exception):
    """Base exception for key/value store errors"""
    pass


class StoreUnreachableError(StoreError):
    """Connection or transport failure talking to the store"""
    pass


class KeyNotFoundError(StoreError):
    """The key an operation depends on does not exist"""
    pass


class KeyValueStore(Protocol):
    """Primitives the cart repository needs from a key/value store"""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None: ...

    async def compare_and_set(
        self,
        key: str,
        expected: Optional[str],
        value: str,
        ttl: Optional[int] = None,
    ) -> bool: ...

    async def rename(self, old_key: str, new_key: str) -> None: ...

    async def expire(self, key: str, ttl: int) -> bool: ...

    async def delete(self, key: str) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


def redis_retry(attempts: int) -> AsyncRetrying:
    """Retry policy for dropped connections; other errors surface at once"""
    return AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(max(attempts, 1)),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(RedisConnectionError),
    )


class RedisStore:
    """Key/value store backed by a single shared Redis connection pool"""

    def __init__(
        self,
        url: str,
        timeout: float = 2.0,
        retry_attempts: int = 3,
        client: Optional[redis.Redis] = None,
    ):
        """
        Args:
            url: Redis URL (redis://host:port/db)
            timeout: Socket and connect timeout per call, in seconds
            retry_attempts: Attempts for calls failing with a connection error
            client: Pre-built client, mainly for tests
        """
        self.retry_attempts = retry_attempts
        self._redis = client or redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        self._compare_and_set = self._redis.register_script(_COMPARE_AND_SET_LUA)

    async def _execute(self, operation: str, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        try:
            async for attempt in redis_retry(self.retry_attempts):
                with attempt:
                    return await func(*args)
        except ResponseError:
            raise
        except RedisError as e:
            logger.error(f"Redis {operation} failed: {e}")
            raise StoreUnreachableError(f"Redis is not able to connect: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        return await self._execute("GET", self._redis.get, key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self._execute("SET", lambda: self._redis.set(key, value, ex=ttl or None))

    async def compare_and_set(
        self,
        key: str,
        expected: Optional[str],
        value: str,
        ttl: Optional[int] = None,
    ) -> bool:
        args = ["1" if expected is None else "0", expected or "", value, str(ttl or 0)]
        result = await self._execute(
            "EVALSHA",
            lambda: self._compare_and_set(keys=[key], args=args),
        )
        return bool(result)

    async def rename(self, old_key: str, new_key: str) -> None:
        try:
            await self._execute("RENAME", self._redis.rename, old_key, new_key)
        except ResponseError as e:
            logger.debug(f"Unable to rename {old_key}: {e}")
            raise KeyNotFoundError(old_key) from e

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self._execute("EXPIRE", self._redis.expire, key, ttl))

    async def delete(self, key: str) -> None:
        await self._execute("DEL", self._redis.delete, key)

    async def ping(self) -> bool:
        return bool(await self._execute("PING", self._redis.ping))

    async def close(self) -> None:
        await self._redis.aclose()


class InMemoryStore:
    """In-process key/value store with TTL support"""

    def __init__(self):
        self._data: dict[str, tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[tuple[str, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return None
        return entry

    @staticmethod
    def _deadline(ttl: Optional[int]) -> Optional[float]:
        return time.monotonic() + ttl if ttl else None

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._data[key] = (value, self._deadline(ttl))

    async def compare_and_set(
        self,
        key: str,
        expected: Optional[str],
        value: str,
        ttl: Optional[int] = None,
    ) -> bool:
        entry = self._live(key)
        current = entry[0] if entry else None
        if current != expected:
            return False
        self._data[key] = (value, self._deadline(ttl))
        return True

    async def rename(self, old_key: str, new_key: str) -> None:
        entry = self._live(old_key)
        if entry is None:
            raise KeyNotFoundError(old_key)
        del self._data[old_key]
        self._data[new_key] = entry

    async def expire(self, key: str, ttl: int) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        self._data[key] = (entry[0], self._deadline(ttl))
        return True

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()


def create_store(url: str, timeout: float = 2.0, retry_attempts: int = 3) -> KeyValueStore:
    """Build the store selected by the URL scheme"""
    if url.startswith(MEMORY_URL_SCHEME):
        logger.warning("Using in-memory cart store - carts are lost on restart")
        return InMemoryStore()
    return RedisStore(url, timeout=timeout, retry_attempts=retry_attempts)
