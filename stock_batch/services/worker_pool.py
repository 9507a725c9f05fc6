"""
WorkerPool -- owned, fixed-size thread pool for batch items.

Contract:
    Wraps ``concurrent.futures.ThreadPoolExecutor`` as an explicitly
    constructed resource.  The owner shuts it down; nothing else does.

Invariants enforced:
    - ``submit()`` after ``shutdown()`` raises WorkerPoolShutdownError.
    - ``shutdown(drain=True)`` lets in-flight items finish, cancels queued
      ones and returns once the workers have exited.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

from stock_kernel.exceptions import WorkerPoolShutdownError
from stock_kernel.logging_config import get_logger

logger = get_logger("batch.worker_pool")

T = TypeVar("T")


class WorkerPool:

    def __init__(self, size: int, name: str = "stock-batch"):
        if size < 1:
            raise ValueError(f"Worker pool size must be at least 1, got {size}")
        self._size = size
        self._name = name
        self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._shutdown = False

    @property
    def size(self) -> int:
        return self._size

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        """Queue ``fn(*args, **kwargs)`` for a worker thread.

        Raises:
            WorkerPoolShutdownError: The pool no longer accepts work.
        """
        with self._lock:
            if self._shutdown:
                raise WorkerPoolShutdownError(self._name)
            return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self, drain: bool = True) -> None:
        """Refuse new work and cancel queued items.

        Args:
            drain: Wait for in-flight items to finish before returning.
        """
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
        self._executor.shutdown(wait=drain, cancel_futures=True)
        logger.info("worker_pool_shutdown", extra={"pool": self._name, "drained": drain})

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown(drain=True)
