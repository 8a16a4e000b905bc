"""
Per-contact mutual exclusion for inbound message processing.

Events for the same contact are serialized so two messages cannot race
through the conversation state machine or create duplicate conversations.
Events for different contacts never contend.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Optional

from redis.exceptions import LockError

from logging_config import get_logger

logger = get_logger(__name__)

LOCK_KEY_PREFIX = 'engagement:contact-lock'


class ContactLockTimeout(Exception):
    """Raised when the lock for a contact cannot be acquired in time"""

    def __init__(self, phone_number: str, timeout: float):
        super().__init__(f"Timed out after {timeout}s waiting for lock on contact {phone_number}")
        self.phone_number = phone_number
        self.timeout = timeout


class RedisContactLockManager:
    """Distributed lock shared by all Celery workers, backed by redis-py's Lock"""

    def __init__(self, redis_client, timeout: float = 30.0, lease_seconds: float = 120.0):
        self.redis = redis_client
        self.timeout = timeout
        self.lease_seconds = lease_seconds

    @contextmanager
    def hold(self, phone_number: str):
        lock = self.redis.lock(
            f"{LOCK_KEY_PREFIX}:{phone_number}",
            timeout=self.lease_seconds,
            blocking_timeout=self.timeout,
        )
        if not lock.acquire(blocking=True):
            logger.warning("Contact lock timeout", phone_number=phone_number, timeout=self.timeout)
            raise ContactLockTimeout(phone_number, self.timeout)
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                # Lease expired and another worker may own the lock now
                logger.warning("Contact lock release failed", phone_number=phone_number, error=str(e))


class _LockEntry:
    __slots__ = ('lock', 'users')

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class ProcessLockTable:
    """
    Per-phone locks shared by every app built in this process.

    An entry lives only while someone holds or waits on it, so the table
    does not grow with every phone number ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[str, _LockEntry] = {}

    def acquire(self, key: str, timeout: float) -> bool:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _LockEntry()
            entry.users += 1
        if entry.lock.acquire(timeout=timeout):
            return True
        self._forget(key)
        return False

    def release(self, key: str) -> None:
        with self._guard:
            self._entries[key].lock.release()
        self._forget(key)

    def _forget(self, key: str) -> None:
        with self._guard:
            entry = self._entries[key]
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


PROCESS_LOCKS = ProcessLockTable()


class LocalContactLockManager:
    """
    In-process contact lock for the eager/testing setup and single-process
    deployments. Separate worker processes are not serialized; use the Redis
    backend for those.
    """

    def __init__(self, timeout: float = 30.0, table: Optional[ProcessLockTable] = None):
        self.timeout = timeout
        self._table = table if table is not None else PROCESS_LOCKS

    @contextmanager
    def hold(self, phone_number: str):
        if not self._table.acquire(phone_number, self.timeout):
            logger.warning("Contact lock timeout", phone_number=phone_number, timeout=self.timeout)
            raise ContactLockTimeout(phone_number, self.timeout)
        try:
            yield
        finally:
            self._table.release(phone_number)
