"""Bounded worker pool with blocking submission."""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from .config import default_workers
from .logging import get_logger


class WorkerPool:
    """Runs submitted callables on a fixed number of threads.

    ``submit`` blocks while every worker is busy, so a producer iterating a
    large result set never gets more than ``size`` units ahead of the
    workers. ``wait`` blocks until every submitted unit has finished.
    """

    def __init__(self, size: Optional[int] = None, *, name: str = "repocensus-worker") -> None:
        self.size = size if size is not None else default_workers()
        if self.size < 1:
            raise ValueError(f"worker pool size must be at least 1, got {self.size}")
        self._executor = ThreadPoolExecutor(max_workers=self.size, thread_name_prefix=name)
        self._slots = threading.BoundedSemaphore(self.size)
        self._idle = threading.Condition()
        self._pending = 0
        self._submitted = 0
        self.logger = get_logger("pool")

    @property
    def pending(self) -> int:
        with self._idle:
            return self._pending

    @property
    def submitted(self) -> int:
        with self._idle:
            return self._submitted

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Schedule ``fn``; blocks until a worker slot is free."""
        self._slots.acquire()
        with self._idle:
            self._pending += 1
            self._submitted += 1
        try:
            return self._executor.submit(self._run, fn, args, kwargs)
        except BaseException:
            self._finish()
            raise

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until no unit is pending. Returns False if ``timeout`` expired."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.wait()
        self.shutdown()

    def _run(self, fn: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
        try:
            return fn(*args, **kwargs)
        except Exception:
            self.logger.exception("Worker task failed")
            raise
        finally:
            self._finish()

    def _finish(self) -> None:
        with self._idle:
            self._pending -= 1
            if self._pending == 0:
                self._idle.notify_all()
        self._slots.release()


__all__ = ["WorkerPool"]
