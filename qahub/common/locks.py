"""
Keyed mutual exclusion for index read-modify-write cycles.

One lock per key (a content type). The local variant covers a single
process; the redis variant covers several API instances and the worker
sharing one database.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Optional, Protocol

from redis import Redis
from redis.exceptions import LockError, RedisError

from .exceptions import StoreError

logger = logging.getLogger(__name__)


class KeyedLock(Protocol):
    def hold(self, key: str) -> AbstractContextManager[None]:
        ...


class LocalKeyedLock:
    """In-process keyed lock built on threading.Lock."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._lock_for(key)
        with lock:
            yield


class RedisKeyedLock:
    """
    Keyed lock backed by redis-py's Lock.

    Args:
        redis_client: Redis client instance
        timeout: Seconds after which a held lock is released anyway
        blocking_timeout: Seconds to wait for the lock before failing
        namespace: Prefix of the lock keys in redis
    """

    def __init__(
        self,
        redis_client: Redis,
        timeout: float = 10.0,
        blocking_timeout: Optional[float] = None,
        namespace: str = "qahub:lock"
    ) -> None:
        self._redis = redis_client
        self._timeout = timeout
        self._blocking_timeout = (
            blocking_timeout if blocking_timeout is not None else timeout
        )
        self._namespace = namespace

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        name = f"{self._namespace}:{key}"
        lock = self._redis.lock(
            name,
            timeout=self._timeout,
            blocking_timeout=self._blocking_timeout
        )
        try:
            acquired = lock.acquire()
        except RedisError as e:
            logger.error(f"Failed to acquire lock {name}: {e}")
            raise StoreError("Index lock unavailable") from e

        if not acquired:
            logger.error(f"Timed out waiting for lock {name}")
            raise StoreError("Index lock unavailable")

        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # Expired while held; the next holder already owns it
                logger.warning(f"Lock {name} expired before release")


def create_keyed_lock(
    lock_backend: str,
    redis_url: str,
    timeout: float = 10.0
) -> tuple[KeyedLock, Optional[Redis]]:
    """
    Create the per-type index lock for a LOCK_BACKEND value.

    Args:
        lock_backend: "local" or "redis"
        redis_url: Redis connection URL, used by the redis backend
        timeout: Auto-release time of redis locks

    Returns:
        The keyed lock and the redis client backing it, if any
    """
    if lock_backend == "redis":
        redis_client = Redis.from_url(redis_url)
        return RedisKeyedLock(redis_client, timeout=timeout), redis_client
    return LocalKeyedLock(), None
