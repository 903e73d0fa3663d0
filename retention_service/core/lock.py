"""Redis based cluster lock.

Only one retention manager instance across the cluster may run a cycle at a
time. The lock is a Redis key holding a random token with a TTL; extending
and releasing it only succeed while the token still matches, so an instance
that lost the lock cannot extend or delete a lock taken over by another one.
"""

from typing import Optional
from uuid import uuid4

import redis.asyncio as redis
from redis.exceptions import RedisError

from retention_service.config import RedisSettings, settings
from retention_service.observability.logging import get_logger
from retention_service.retention.cancellation import CancellationToken
from retention_service.retention.errors import LockNotAcquiredError

logger = get_logger(__name__)

EXTEND_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
end
return 0
"""

RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisLockHandle:
    """A held cluster lock.

    ``signal`` is cancelled when the lock is lost, that is when an extension
    finds the key expired or owned by another instance.
    """

    def __init__(self, lock: "RedisLock", token: str) -> None:
        self.lock = lock
        self.token = token
        self.signal = CancellationToken()
        self.released = False

    async def extend(self) -> None:
        """Extend the lock TTL, marking the handle as lost on failure."""
        if self.released or self.signal.cancelled:
            return
        try:
            extended = await self.lock.extend_token(self.token)
        except RedisError as e:
            logger.warning("retention_lock_extension_error", lock_key=self.lock.key, error=str(e))
            extended = False
        if not extended:
            logger.warning("retention_lock_lost", lock_key=self.lock.key)
            self.signal.cancel("lock lost")

    async def release(self) -> None:
        """Release the lock if this handle still owns it."""
        if self.released:
            return
        self.released = True
        await self.lock.release_token(self.token)


class RedisLock:
    """Redis-based distributed lock.

    Example:
        >>> lock = RedisLock("retention_manager_lock", ttl_ms=60000)
        >>> handle = await lock.acquire()
        >>> try:
        ...     await manager.handle(handle)
        ... finally:
        ...     await handle.release()
    """

    def __init__(
        self,
        key: str,
        ttl_ms: int = 60000,
        redis_url: str | None = None,
        redis_settings: Optional[RedisSettings] = None,
        client: Optional[redis.Redis] = None,
        prefix: str = "retention",
    ) -> None:
        """Initialize the lock.

        Args:
            key: Lock name
            ttl_ms: Lock time-to-live in milliseconds
            redis_url: Redis connection URL (uses settings if not provided)
            redis_settings: Redis connection settings (global ones if not provided)
            client: Existing Redis client to use instead of connecting
            prefix: Key prefix
        """
        self.redis_settings = redis_settings or settings.redis
        self.redis_url = redis_url or str(self.redis_settings.url)
        self.key = f"{prefix}:lock:{key}"
        self.ttl_ms = ttl_ms
        self._redis: Optional[redis.Redis] = client

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                password=self.redis_settings.password,
                socket_timeout=self.redis_settings.socket_timeout,
                socket_connect_timeout=self.redis_settings.socket_connect_timeout,
                retry_on_timeout=self.redis_settings.retry_on_timeout,
                decode_responses=True,
            )
            logger.info("connected_to_redis")

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("disconnected_from_redis")

    async def acquire(self) -> RedisLockHandle:
        """Acquire the lock.

        Returns:
            Handle of the held lock

        Raises:
            LockNotAcquiredError: If another instance holds the lock
        """
        await self.connect()
        token = uuid4().hex
        acquired = await self._redis.set(self.key, token, nx=True, px=self.ttl_ms)
        if not acquired:
            raise LockNotAcquiredError(self.key)
        logger.debug("retention_lock_acquired", lock_key=self.key)
        return RedisLockHandle(self, token)

    async def extend_token(self, token: str) -> bool:
        """Reset the TTL of the lock if ``token`` still owns it."""
        await self.connect()
        result = await self._redis.eval(EXTEND_SCRIPT, 1, self.key, token, self.ttl_ms)
        return bool(result)

    async def release_token(self, token: str) -> bool:
        """Delete the lock if ``token`` still owns it."""
        await self.connect()
        try:
            result = await self._redis.eval(RELEASE_SCRIPT, 1, self.key, token)
        except RedisError as e:
            # The key expires on its own after the TTL
            logger.warning("retention_lock_release_failed", lock_key=self.key, error=str(e))
            return False
        logger.debug("retention_lock_released", lock_key=self.key, released=bool(result))
        return bool(result)
