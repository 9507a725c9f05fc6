"""
BatchScheduler -- In-process polling scheduler.

Contract:
    Holds in-memory job schedules, polls them on a fixed interval,
    evaluates ``should_fire()`` (pure) and runs due jobs via
    ``BatchExecutor``.

Architecture: stock_batch/services.  Uses stock_batch.domain.schedule
    for pure evaluation and stock_batch.services.executor for execution.

Invariants enforced:
    - All timestamps from the injected Clock.
    - Schedule evaluation is pure (should_fire).
    - Graceful shutdown: ``stop()`` signals the loop, waits for the current
      job and then drains the worker pool when the scheduler owns it.
"""

from __future__ import annotations

import threading
from dataclasses import replace

from stock_batch.domain.schedule import compute_next_run, should_fire
from stock_batch.domain.types import BatchRunResult, BatchRunStatus, JobSchedule
from stock_batch.services.executor import BatchExecutor
from stock_batch.services.worker_pool import WorkerPool
from stock_batch.tasks.base import TaskRegistry, default_task_registry
from stock_kernel.domain.clock import Clock
from stock_kernel.exceptions import BatchAbortedError
from stock_kernel.logging_config import get_logger
from stock_services.replenishment_engine import ReplenishmentEngine

logger = get_logger("batch.scheduler")


class BatchScheduler:
    """In-process polling scheduler for batch job schedules.

    Contract:
        - ``add_schedule()`` / ``remove_schedule()`` manage schedules by name.
        - ``tick()`` evaluates all active schedules and fires due ones.
        - ``run_now()`` fires one schedule immediately (ON_DEMAND included).
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election).
        - Does NOT persist schedules across restarts.
    """

    def __init__(
        self,
        executor: BatchExecutor,
        clock: Clock,
        tick_interval_seconds: int = 60,
        owned_pool: WorkerPool | None = None,
    ):
        self._executor = executor
        self._clock = clock
        self._tick_interval = tick_interval_seconds
        self._owned_pool = owned_pool
        self._schedules: dict[str, JobSchedule] = {}
        self._schedules_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def for_engine(
        cls,
        engine: ReplenishmentEngine,
        task_registry: TaskRegistry | None = None,
    ) -> BatchScheduler:
        """Scheduler with its own worker pool, sized from the engine settings."""
        settings = engine.settings.batch
        pool = WorkerPool(settings.worker_pool_size)
        executor = BatchExecutor(
            engine, task_registry or default_task_registry(engine.settings), pool,
        )
        return cls(
            executor,
            engine.clock,
            tick_interval_seconds=settings.tick_interval_seconds,
            owned_pool=pool,
        )

    # -------------------------------------------------------------------------
    # Schedules
    # -------------------------------------------------------------------------

    def add_schedule(self, schedule: JobSchedule) -> None:
        """
        Raises:
            ValueError: job_name already scheduled.
            TaskNotFoundError: task_type not registered.
        """
        self._executor.task_registry.get(schedule.task_type)
        with self._schedules_lock:
            if schedule.job_name in self._schedules:
                raise ValueError(f"Job '{schedule.job_name}' is already scheduled")
            self._schedules[schedule.job_name] = schedule
        logger.info(
            "schedule_added",
            extra={
                "job_name": schedule.job_name,
                "task_type": schedule.task_type,
                "frequency": schedule.frequency.value,
            },
        )

    def remove_schedule(self, job_name: str) -> None:
        with self._schedules_lock:
            if self._schedules.pop(job_name, None) is None:
                raise KeyError(f"No schedule named '{job_name}'")

    def get_schedule(self, job_name: str) -> JobSchedule:
        with self._schedules_lock:
            try:
                return self._schedules[job_name]
            except KeyError:
                raise KeyError(f"No schedule named '{job_name}'") from None

    @property
    def schedules(self) -> tuple[JobSchedule, ...]:
        with self._schedules_lock:
            return tuple(self._schedules.values())

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Evaluate and fire due schedules (public for testing).

        Returns the number of schedules that were fired.
        """
        now = self._clock.now()
        fired = 0
        for schedule in self.schedules:
            if self._stop_event.is_set():
                break
            if not should_fire(schedule, now):
                continue
            self._fire(schedule.job_name)
            fired += 1
        return fired

    def run_now(self, job_name: str) -> BatchRunResult:
        """Run one schedule immediately, whatever its frequency.

        Unlike ``tick()``, errors propagate to the caller after the
        schedule has been updated.
        """
        self.get_schedule(job_name)
        return self._fire(job_name, propagate=True)

    def start(self) -> None:
        """Start the scheduler in a background daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="batch-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop, wait for the loop, then drain an owned pool.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        if self._owned_pool is not None:
            self._owned_pool.shutdown(drain=True)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background polling loop. Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _fire(self, job_name: str, propagate: bool = False) -> BatchRunResult | None:
        schedule = self.get_schedule(job_name)
        result: BatchRunResult | None = None
        error: Exception | None = None

        # One job at a time; a manual run never overlaps a tick.
        with self._run_lock:
            now = self._clock.now()
            try:
                result = self._executor.run(schedule.task_type, schedule.parameters)
                status = result.status
            except BatchAbortedError as exc:
                status = BatchRunStatus.ABORTED
                error = exc
                logger.error(
                    "schedule_aborted",
                    extra={"job_name": job_name, "reason": exc.reason},
                )
            except Exception as exc:
                status = BatchRunStatus.FAILED
                error = exc
                logger.exception("schedule_fire_failed", extra={"job_name": job_name})

            next_run = compute_next_run(schedule.frequency, now)
            with self._schedules_lock:
                current = self._schedules.get(job_name)
                if current is not None:
                    self._schedules[job_name] = replace(
                        current,
                        last_run_at=now,
                        last_run_status=status,
                        next_run_at=next_run,
                    )

        logger.info(
            "schedule_fired",
            extra={
                "job_name": job_name,
                "task_type": schedule.task_type,
                "status": status.value,
                "next_run_at": next_run,
            },
        )
        if error is not None and propagate:
            raise error
        return result
