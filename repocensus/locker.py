"""Keyed mutual exclusion for storage roots shared between repositories."""

from __future__ import annotations

import threading
from typing import Callable, Dict

from .logging import get_logger

_logger = get_logger("locker")


class RootLock:
    """A named lock that logs every acquisition and release at debug level."""

    def __init__(self, key: str, lock: threading.Lock | None = None) -> None:
        self.key = key
        self._lock = lock if lock is not None else threading.Lock()

    def acquire(self) -> None:
        _logger.debug("lock %s", self.key)
        self._lock.acquire()

    def release(self) -> None:
        _logger.debug("unlock %s", self.key)
        self._lock.release()

    def __enter__(self) -> "RootLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


class ResourceLocker:
    """Hands out one shared lock per key, creating it on first request.

    Locks are never discarded during a run; the key space is bounded by the
    storage roots of the input set.
    """

    def __init__(self, factory: Callable[[str], RootLock] | None = None) -> None:
        self._factory = factory or RootLock
        self._mutex = threading.Lock()
        self._locks: Dict[str, RootLock] = {}

    def acquire(self, key: str) -> RootLock:
        """Return the lock registered for ``key``; the lock itself is not taken."""
        with self._mutex:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._factory(key)
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        with self._mutex:
            return len(self._locks)


__all__ = ["ResourceLocker", "RootLock"]
