"""In-process exclusion for (employee, pay period) computations."""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager

from payroll_kernel.logging_config import get_logger

logger = get_logger("services.locks")


class KeyedLockRegistry:
    """
    Non-blocking per-key guard.

    ``hold(key)`` either takes the key or fails immediately; it never
    waits.  Cross-process exclusion is left to the database unique key.
    """

    def __init__(self) -> None:
        self._held: set[Hashable] = set()
        self._guard = threading.Lock()

    def try_acquire(self, key: Hashable) -> bool:
        with self._guard:
            if key in self._held:
                return False
            self._held.add(key)
            return True

    def release(self, key: Hashable) -> None:
        with self._guard:
            self._held.discard(key)

    def is_held(self, key: Hashable) -> bool:
        with self._guard:
            return key in self._held

    @contextmanager
    def hold(self, key: Hashable, on_conflict) -> Iterator[None]:
        """
        Hold ``key`` for the duration of the block.

        ``on_conflict`` builds the exception raised when the key is taken.
        """
        if not self.try_acquire(key):
            logger.warning("keyed_lock_conflict", extra={"key": str(key)})
            raise on_conflict()
        try:
            yield
        finally:
            self.release(key)
