import logging
import threading
import uuid
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class HoldLockRegistry:
    """One mutex per legal hold; a hold is the unit of mutual exclusion.

    Covers concurrent callers inside one process. Across processes the
    service additionally takes a row lock on the hold.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, hold_id: str | uuid.UUID) -> threading.Lock:
        key = str(hold_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, hold_id: str | uuid.UUID):
        lock = self._lock_for(hold_id)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()


hold_locks = HoldLockRegistry()
