"""
Cache-backed distributed locking for HydroBill Platform.

cache.add() is an atomic set-if-absent on the database and Redis cache
backends, which makes it usable as a lease-based mutex across processes.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from django.core.cache import cache

logger = logging.getLogger(__name__)

LOCK_POLL_INTERVAL_SECONDS = 0.1
# A lease this close to expiry is left to lapse instead of being deleted.
LOCK_RELEASE_MARGIN_SECONDS = 1.0


class LockNotAcquired(RuntimeError):
    """Raised when a lock cannot be taken within its blocking timeout."""

    def __init__(self, lock_name: str) -> None:
        super().__init__(f"Failed to acquire lock: {lock_name}")
        self.lock_name = lock_name


class DistributedLock:
    """
    Distributed lock using cache backend.
    Prevents concurrent execution of critical sections keyed by name.

    The lease expires after ``timeout`` seconds so a crashed holder cannot
    block the key forever.
    """

    LOCK_PREFIX = "lock"

    def __init__(
        self,
        lock_name: str,
        timeout: int = 300,
        blocking: bool = True,
        blocking_timeout: float = 30,
    ) -> None:
        self.lock_name = lock_name
        self.timeout = timeout
        self.blocking = blocking
        self.blocking_timeout = blocking_timeout
        self._cache_key = f"{self.LOCK_PREFIX}:{lock_name}"
        self._lock_id = uuid.uuid4().hex
        self._acquired = False
        self._acquired_at = 0.0

    def acquire(self) -> bool:
        """Acquire the lock."""
        start_time = time.monotonic()

        while True:
            attempt_started = time.monotonic()
            if self._try_acquire():
                self._acquired = True
                self._acquired_at = attempt_started
                logger.debug(f"🔐 [Lock] Acquired: {self.lock_name}")
                return True

            if not self.blocking:
                return False

            if time.monotonic() - start_time >= self.blocking_timeout:
                logger.warning(f"⚠️ [Lock] Acquisition timed out: {self.lock_name}")
                return False

            time.sleep(LOCK_POLL_INTERVAL_SECONDS)

    def release(self) -> bool:
        """
        Release the lock if this instance still owns the lease.

        The cache API has no atomic compare-and-delete, so the owner check and
        the delete are two calls. The lease can only pass to another holder
        after it expires, so the key is deleted only while at least
        ``LOCK_RELEASE_MARGIN_SECONDS`` of our lease remain. A lease closer to
        expiry than that is left to lapse on its own.
        """
        if not self._acquired:
            return False

        self._acquired = False
        if time.monotonic() - self._acquired_at >= self.timeout - LOCK_RELEASE_MARGIN_SECONDS:
            logger.debug(f"⏳ [Lock] Lease for {self.lock_name} left to expire")
            return False

        current = cache.get(self._cache_key)
        if current == self._lock_id:
            cache.delete(self._cache_key)
            logger.debug(f"🔓 [Lock] Released: {self.lock_name}")
            return True

        logger.warning(f"⚠️ [Lock] Lease for {self.lock_name} expired before release")
        return False

    def _try_acquire(self) -> bool:
        """Try to acquire the lock without blocking."""
        return bool(cache.add(self._cache_key, self._lock_id, self.timeout))

    def __enter__(self) -> DistributedLock:
        if not self.acquire():
            raise LockNotAcquired(self.lock_name)
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()

    @property
    def is_locked(self) -> bool:
        """Check if the lock is currently held (by anyone)."""
        return cache.get(self._cache_key) is not None
