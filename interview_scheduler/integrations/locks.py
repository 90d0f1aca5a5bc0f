"""Named mutual-exclusion locks with Protocol pattern for dependency injection.

Provides RedisLockService (shared across processes) and LocalLockService
(threading locks, single process only). Scheduling holds
``interviewer:<id>`` from the conflict check through commit, and calls
``ensure_held()`` on the lease right before committing.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field
from typing import Protocol

import redis
from redis.exceptions import LockError

from ..config import settings
from ..errors import LockUnavailable

logger = logging.getLogger(__name__)


class LockLease(Protocol):
    """Handle on a held lock."""

    def ensure_held(self) -> None: ...


class LockService(Protocol):
    """Lock service interface."""

    def hold(self, key: str) -> AbstractContextManager[LockLease]: ...


class _RedisLease:
    def __init__(self, lock, key: str) -> None:
        self._lock = lock
        self._key = key

    def ensure_held(self) -> None:
        """Reset the TTL, or raise LockUnavailable if the lock already expired."""
        try:
            self._lock.reacquire()
        except LockError as exc:
            raise LockUnavailable("Lock expired before commit, try again", lock=self._key) from exc


class RedisLockService:
    """Redis-backed lock implementation (``SET NX PX`` under the hood)."""

    def __init__(self, redis_url: str, timeout: float, blocking_timeout: float) -> None:
        self._client = redis.from_url(redis_url)
        self._client.ping()
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout

    @contextmanager
    def hold(self, key: str) -> Iterator[LockLease]:
        lock = self._client.lock(
            f"lock:{key}",
            timeout=self._timeout,
            blocking_timeout=self._blocking_timeout,
        )
        if not lock.acquire():
            raise LockUnavailable("Calendar is busy, try again shortly", lock=key)
        try:
            yield _RedisLease(lock, key)
        finally:
            try:
                lock.release()
            except LockError:
                logger.warning("Lock %s expired before release", key)


class _LocalLease:
    def ensure_held(self) -> None:
        # Threading locks never expire
        pass


@dataclass
class _KeyLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class LocalLockService:
    """In-process locks for single-worker deployments and tests.

    A key's lock lives only while someone holds or waits for it.
    """

    def __init__(self, blocking_timeout: float = 10.0) -> None:
        self._blocking_timeout = blocking_timeout
        self._locks: dict[str, _KeyLock] = {}
        self._registry = threading.Lock()

    def _checkout(self, key: str) -> _KeyLock:
        with self._registry:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _KeyLock) -> None:
        with self._registry:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Iterator[LockLease]:
        entry = self._checkout(key)
        try:
            if not entry.lock.acquire(timeout=self._blocking_timeout):
                raise LockUnavailable("Calendar is busy, try again shortly", lock=key)
            try:
                yield _LocalLease()
            finally:
                entry.lock.release()
        finally:
            self._checkin(key, entry)


def create_lock_service() -> LockService:
    """Factory: Redis locks when Redis is reachable, process-local otherwise."""
    if not settings.redis_url:
        return LocalLockService(settings.lock_blocking_timeout_seconds)
    try:
        return RedisLockService(
            settings.redis_url,
            timeout=settings.lock_timeout_seconds,
            blocking_timeout=settings.lock_blocking_timeout_seconds,
        )
    except Exception:
        logger.warning("Redis unavailable, falling back to process-local locks")
        return LocalLockService(settings.lock_blocking_timeout_seconds)
