"""Per-activity mutual exclusion for imports.

A create notification followed quickly by an update (or a duplicate delivery)
would otherwise interleave the existence check, the segment-effort
invalidation and the re-save.  Callers for the same key wait; callers for
different keys never block each other.

``KeyedLock`` only serialises imports inside one process.  Deployments that
import from several processes (more than one gunicorn worker, or a Celery
pool with ``--concurrency`` above 1) set ``import.lock_redis_url`` (or
``LOCK_REDIS_URL``) so ``RedisKeyedLock`` is used instead.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Hashable, Iterator

import redis
from redis.exceptions import LockError

from stravaimport.errors import ImportInProgressError

log = logging.getLogger(__name__)

REDIS_LOCK_PREFIX = "stravaimport:import-lock:"
REDIS_LOCK_TTL = 15 * 60  # seconds; a crashed holder frees the key after this


class KeyedLock:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @contextlib.contextmanager
    def hold(self, key: Hashable, timeout: float | None = None) -> Iterator[None]:
        """Hold the lock for *key*; raise ImportInProgressError after *timeout* seconds."""
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1

        acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
        try:
            if not acquired:
                raise ImportInProgressError(f"Another import of {key} is still running after {timeout}s")
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    # Last user of this key; drop it so the registry doesn't grow forever.
                    del self._waiters[key]
                    del self._locks[key]

    def is_held(self, key: Hashable) -> bool:
        with self._guard:
            lock = self._locks.get(key)
        return lock is not None and lock.locked()


class RedisKeyedLock:
    """Same interface as KeyedLock, backed by a Redis lock shared by every process."""

    def __init__(self, client: redis.Redis, prefix: str = REDIS_LOCK_PREFIX, ttl: float = REDIS_LOCK_TTL) -> None:
        self.client = client
        self.prefix = prefix
        self.ttl = ttl

    @classmethod
    def from_url(cls, url: str, **kwargs) -> RedisKeyedLock:
        return cls(redis.from_url(url), **kwargs)

    def _name(self, key: Hashable) -> str:
        return f"{self.prefix}{key}"

    @contextlib.contextmanager
    def hold(self, key: Hashable, timeout: float | None = None) -> Iterator[None]:
        """Hold the lock for *key*; raise ImportInProgressError after *timeout* seconds."""
        lock = self.client.lock(self._name(key), timeout=self.ttl, blocking_timeout=timeout)
        if not lock.acquire():
            raise ImportInProgressError(f"Another import of {key} is still running after {timeout}s")
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                # The TTL ran out mid-import; another process may already hold the key.
                log.warning("Redis lock for %s expired before release: %s", key, e)

    def is_held(self, key: Hashable) -> bool:
        return bool(self.client.lock(self._name(key)).locked())


# Process-wide registry shared by every importer instance.
activity_locks = KeyedLock()
