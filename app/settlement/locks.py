"""
Redis locks for settlement runs.

Scheduled runs (payout retries, the referral cascade) must have at most
one active instance at a time. Database row locks cover individual
transitions; a DistributedLock covers a whole run that
makes slow rail calls between those transitions.

Usage:
    from settlement.locks import DistributedLock, retry_run_lock

    with retry_run_lock():
        RetryService.process_due_retries()

    with DistributedLock("settlement:reports", ttl=60):
        ...

A lock expires after its TTL so a crashed worker cannot wedge a run.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from settlement.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


RETRY_RUN_LOCK_KEY = "settlement:retry-run"
REFERRAL_CASCADE_LOCK_KEY = "settlement:referral-cascade"

# Long enough for a full run of rail calls
RUN_LOCK_TTL_SECONDS = 15 * 60


class DistributedLock:
    """
    Token-owned Redis lock with a TTL.

    acquire() stores a random token with SET NX EX and fails at once when
    the key is taken. release() only deletes the key while that token is
    still the stored value, so a worker never frees a lock that expired
    and was taken by someone else.

    Args:
        key: Lock name, stored as "lock:<key>"
        ttl: Seconds before the lock expires on its own

    Raises:
        LockAcquisitionError: From acquire() when the lock is held elsewhere
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    end
    return 0
    """

    def __init__(self, key: str, ttl: int = 30) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self._token: str | None = None
        self._redis: Redis | None = None

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> bool:
        """
        Take the lock.

        Returns:
            True once the lock is held

        Raises:
            LockAcquisitionError: Lock held elsewhere
        """
        token = uuid.uuid4().hex
        if not self.redis.set(self.key, token, nx=True, ex=self.ttl):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        self._token = token
        return True

    def release(self) -> bool:
        """
        Free the lock if this instance still owns it.

        Returns:
            True if the lock was deleted, False otherwise. Safe to call twice.
        """
        if self._token is None:
            return False
        released = self.redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(released)

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        self.release()
        return False


def retry_run_lock() -> DistributedLock:
    """Lock guarding one retry scheduler run."""
    return DistributedLock(RETRY_RUN_LOCK_KEY, ttl=RUN_LOCK_TTL_SECONDS)


def referral_cascade_lock() -> DistributedLock:
    """Lock guarding one referral cascade run."""
    return DistributedLock(REFERRAL_CASCADE_LOCK_KEY, ttl=RUN_LOCK_TTL_SECONDS)


__all__ = [
    "DistributedLock",
    "referral_cascade_lock",
    "retry_run_lock",
]
