"""
BatchExecutor -- one-unit-of-work-per-item batch execution on a worker pool.

Contract:
    Resolves a registered task, prepares its items in a read unit of work,
    then runs every item on the worker pool in its own committed unit of
    work through the replenishment facade.

Architecture: stock_batch/services.  Imports from stock_batch.domain,
    stock_batch.tasks and the stock_services facade.

Invariants enforced:
    - Item isolation: each item commits or rolls back alone; one failure
      never undoes another item's work.
    - Per-item errors become FAILED results carrying the error code.
    - Infrastructure errors (OperationalError, InterfaceError) abort the
      run: items not yet started are skipped and BatchAbortedError is
      raised once in-flight items have settled.
    - All timestamps come from the facade's injected Clock.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import CancelledError, Future
from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import InterfaceError, OperationalError

from stock_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchRunResult,
    BatchRunStatus,
)
from stock_batch.services.worker_pool import WorkerPool
from stock_batch.tasks.base import BatchItemInput, BatchTask, BatchTaskResult, TaskRegistry
from stock_kernel.exceptions import BatchAbortedError, StockKernelError
from stock_kernel.logging_config import LogContext, get_logger
from stock_services.replenishment_engine import ReplenishmentEngine

logger = get_logger("batch.executor")


class _DiscardItem(Exception):
    """Rolls an item's unit of work back while keeping the task's result."""

    def __init__(self, result: BatchTaskResult):
        self.result = result
        super().__init__(result.error_code or result.status.value)


class BatchExecutor:
    """Batch execution engine with per-item unit-of-work isolation.

    Non-goals:
        - Does NOT persist run history -- results are returned to the caller.
        - Does NOT own the pool -- whoever built it shuts it down.
    """

    def __init__(
        self,
        engine: ReplenishmentEngine,
        task_registry: TaskRegistry,
        pool: WorkerPool,
    ):
        self._engine = engine
        self._task_registry = task_registry
        self._pool = pool

    @property
    def task_registry(self) -> TaskRegistry:
        return self._task_registry

    @property
    def pool(self) -> WorkerPool:
        return self._pool

    def run(
        self,
        task_type: str,
        parameters: dict[str, Any] | None = None,
    ) -> BatchRunResult:
        """Run every item of a task and wait for the outcome.

        Raises:
            TaskNotFoundError: task_type is not registered.
            BatchAbortedError: storage became unavailable mid-run.
            WorkerPoolShutdownError: the pool no longer accepts work.
            StockKernelError: item preparation rejected the parameters.
        """
        task = self._task_registry.get(task_type)
        parameters = dict(parameters or {})
        clock = self._engine.clock
        run_id = uuid4()
        start_time = time.monotonic()
        started_at = clock.now()

        with LogContext.bind(job_name=task_type, correlation_id=run_id):
            try:
                with self._engine.unit_of_work() as uow:
                    items = task.prepare_items(parameters, uow, started_at)
            except (OperationalError, InterfaceError) as exc:
                logger.error("batch_aborted", extra={"item_key": None, "reason": str(exc)})
                raise BatchAbortedError(task_type, "<prepare>", str(exc)) from exc

            logger.info(
                "batch_run_started",
                extra={"run_id": str(run_id), "total_items": len(items)},
            )

            abort = threading.Event()
            futures: list[Future[BatchItemResult]] = [
                self._pool.submit(
                    self._run_item, task, item, parameters, started_at, abort,
                    LogContext.get_all(),
                )
                for item in items
            ]

            item_results: list[BatchItemResult] = []
            abort_error: BatchAbortedError | None = None
            for item, future in zip(items, futures):
                try:
                    item_results.append(future.result())
                except BatchAbortedError as exc:
                    abort_error = abort_error or exc
                except CancelledError:
                    item_results.append(self._skipped(item, "CANCELLED", clock.now()))

            if abort_error is not None:
                raise abort_error

            succeeded = sum(1 for r in item_results if r.status == BatchItemStatus.SUCCEEDED)
            failed = sum(1 for r in item_results if r.status == BatchItemStatus.FAILED)
            skipped = sum(1 for r in item_results if r.status == BatchItemStatus.SKIPPED)

            if failed == 0 and skipped == 0:
                status = BatchRunStatus.COMPLETED
            elif succeeded == 0 and skipped == 0:
                status = BatchRunStatus.FAILED
            else:
                status = BatchRunStatus.PARTIALLY_COMPLETED

            result = BatchRunResult(
                run_id=run_id,
                task_type=task_type,
                status=status,
                total_items=len(items),
                succeeded=succeeded,
                failed=failed,
                skipped=skipped,
                item_results=tuple(item_results),
                started_at=started_at,
                completed_at=clock.now(),
                duration_ms=int((time.monotonic() - start_time) * 1000),
            )
            logger.info(
                "batch_run_completed",
                extra={
                    "run_id": str(run_id),
                    "status": status.value,
                    "succeeded": succeeded,
                    "failed": failed,
                    "skipped": skipped,
                    "duration_ms": result.duration_ms,
                },
            )
            return result

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    @staticmethod
    def _skipped(item: BatchItemInput, reason: str, at: datetime) -> BatchItemResult:
        return BatchItemResult(
            item_index=item.item_index,
            item_key=item.item_key,
            status=BatchItemStatus.SKIPPED,
            error_code=reason,
            started_at=at,
            completed_at=at,
        )

    def _run_item(
        self,
        task: BatchTask,
        item: BatchItemInput,
        parameters: dict[str, Any],
        as_of: datetime,
        abort: threading.Event,
        context: dict[str, str],
    ) -> BatchItemResult:
        """Worker-thread body for one item."""
        clock = self._engine.clock
        if abort.is_set():
            return self._skipped(item, "BATCH_ABORTED", clock.now())

        item_start = time.monotonic()
        item_started_at = clock.now()
        product_id = item.product_ids[0] if len(item.product_ids) == 1 else None

        with LogContext.bind(**context), LogContext.bind(product_id=product_id):
            try:
                with self._engine.unit_of_work(item.product_ids) as uow:
                    result = task.execute_item(item, parameters, uow, as_of)
                    if result.status != BatchItemStatus.SUCCEEDED:
                        raise _DiscardItem(result)
            except _DiscardItem as discarded:
                result = discarded.result
            except (OperationalError, InterfaceError) as exc:
                abort.set()
                logger.error(
                    "batch_aborted",
                    extra={"item_key": item.item_key, "reason": str(exc)},
                )
                raise BatchAbortedError(task.task_type, item.item_key, str(exc)) from exc
            except StockKernelError as exc:
                result = BatchTaskResult(
                    status=BatchItemStatus.FAILED,
                    error_code=exc.code,
                    error_message=str(exc),
                )
                logger.warning(
                    "batch_item_failed",
                    extra={"item_key": item.item_key, "error_code": exc.code},
                )
            except Exception as exc:
                result = BatchTaskResult(
                    status=BatchItemStatus.FAILED,
                    error_code="UNHANDLED_EXCEPTION",
                    error_message=str(exc),
                )
                logger.exception(
                    "batch_item_failed",
                    extra={"item_key": item.item_key, "error_code": "UNHANDLED_EXCEPTION"},
                )

        return BatchItemResult(
            item_index=item.item_index,
            item_key=item.item_key,
            status=result.status,
            error_code=result.error_code,
            error_message=result.error_message,
            result_data=result.result_data,
            duration_ms=int((time.monotonic() - item_start) * 1000),
            started_at=item_started_at,
            completed_at=clock.now(),
        )
