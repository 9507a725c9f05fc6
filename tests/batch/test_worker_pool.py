"""
WorkerPool: sizing, submission and shutdown.
"""

import threading

import pytest

from stock_batch.services.worker_pool import WorkerPool
from stock_kernel.exceptions import WorkerPoolShutdownError


class TestWorkerPool:

    def test_runs_work_on_named_threads(self):
        with WorkerPool(2, name="test-pool") as pool:
            future = pool.submit(lambda: threading.current_thread().name)
            assert future.result(timeout=5).startswith("test-pool")
            assert pool.size == 2

    def test_passes_arguments(self):
        with WorkerPool(1) as pool:
            assert pool.submit(pow, 2, 10).result(timeout=5) == 1024

    @pytest.mark.parametrize("size", [0, -3])
    def test_size_must_be_positive(self, size):
        with pytest.raises(ValueError, match="at least 1"):
            WorkerPool(size)

    def test_submit_after_shutdown(self):
        pool = WorkerPool(1, name="closed")
        pool.shutdown()
        assert pool.is_shutdown
        with pytest.raises(WorkerPoolShutdownError, match="'closed' is shut down"):
            pool.submit(lambda: None)

    def test_shutdown_is_idempotent(self):
        pool = WorkerPool(1)
        pool.shutdown()
        pool.shutdown(drain=False)
        assert pool.is_shutdown

    def test_drain_waits_for_in_flight_work(self):
        started = threading.Event()
        release = threading.Event()
        done = []

        def _work():
            started.set()
            release.wait(timeout=5)
            done.append(True)

        pool = WorkerPool(1)
        pool.submit(_work)
        assert started.wait(timeout=5)
        release.set()
        pool.shutdown(drain=True)
        assert done == [True]

    def test_queued_work_is_cancelled(self):
        started = threading.Event()
        release = threading.Event()

        def _block():
            started.set()
            return release.wait(timeout=5)

        pool = WorkerPool(1)
        running = pool.submit(_block)
        assert started.wait(timeout=5)
        queued = pool.submit(lambda: "never")

        pool.shutdown(drain=False)
        release.set()

        assert running.result(timeout=5) is True
        assert queued.cancelled()
