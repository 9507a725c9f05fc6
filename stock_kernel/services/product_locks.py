"""
Per-product mutual exclusion for ledger writers.

Row-level locks on the snapshot row serialize same-product writers on
PostgreSQL.  ``ProductLockRegistry`` adds an in-process lock per product so
the same holds on backends that ignore ``FOR UPDATE`` (SQLite).  Different
products never contend.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from uuid import UUID


class ProductLockRegistry:
    """Lazily created ``threading.Lock`` per product id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[UUID, threading.Lock] = {}

    def _lock_for(self, product_id: UUID) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[product_id] = lock
            return lock

    @contextmanager
    def hold(self, product_ids: Iterable[UUID]) -> Iterator[None]:
        """
        Hold the locks for all given products.

        Locks are acquired in a fixed (sorted) order so two callers locking
        overlapping product sets cannot deadlock.
        """
        ordered = sorted(set(product_ids), key=str)
        acquired: list[threading.Lock] = []
        try:
            for product_id in ordered:
                lock = self._lock_for(product_id)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
