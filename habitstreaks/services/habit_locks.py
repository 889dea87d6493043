"""
habit_locks.py — Per-habit exclusive sections.
Different habits never contend; mutations of one habit run one at a time.
"""

import logging
import threading
import weakref
from contextlib import contextmanager

from habitstreaks.config import HABIT_LOCK_TIMEOUT_SECONDS
from habitstreaks.errors import ConflictError

logger = logging.getLogger(__name__)


class HabitLocks:
    def __init__(self, timeout: float = HABIT_LOCK_TIMEOUT_SECONDS):
        self.timeout = timeout
        # Entries vanish once no caller holds or waits on the lock
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def _lock_for(self, habit_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(habit_id)
            if lock is None:
                lock = self._locks[habit_id] = threading.Lock()
            return lock

    @contextmanager
    def exclusive(self, habit_id: int):
        lock = self._lock_for(habit_id)
        if not lock.acquire(timeout=self.timeout):
            logger.warning(f"Habit {habit_id} busy for more than {self.timeout}s")
            raise ConflictError(f"Habit {habit_id} is being modified by another request; retry", habit_id=habit_id)
        try:
            yield
        finally:
            lock.release()
