"""
stock_batch.services -- Worker pool, batch executor and scheduler.
"""

from stock_batch.services.executor import BatchExecutor
from stock_batch.services.scheduler import BatchScheduler
from stock_batch.services.worker_pool import WorkerPool

__all__ = [
    "BatchExecutor",
    "BatchScheduler",
    "WorkerPool",
]
