"""Core infrastructure shared by the retention service."""

from retention_service.core.lock import RedisLock, RedisLockHandle

__all__ = ["RedisLock", "RedisLockHandle"]
