"""
Batch task contract and the registry the executor resolves tasks from.

Tasks receive kernel services already wired to the item's unit of work;
they never open sessions or commit.  ``default_task_registry()`` holds the
built-in maintenance tasks: bulk demand normalization, expiry scanning,
closed-alert retention, the stock and alert sweep, and event redelivery.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import UUID

from stock_batch.domain.types import BatchItemStatus
from stock_kernel.exceptions import TaskNotFoundError

if TYPE_CHECKING:
    from stock_config.schema import EngineSettings
    from stock_services.replenishment_engine import EngineServices


# =============================================================================
# Supporting DTOs
# =============================================================================


@dataclass(frozen=True)
class BatchItemInput:
    """One item of a batch run.

    Created by ``BatchTask.prepare_items()``.  ``product_ids`` are the
    products whose locks the executor holds while the item runs.
    """

    item_index: int
    item_key: str
    payload: dict[str, Any] = field(default_factory=dict)
    product_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class BatchTaskResult:
    """Result returned by ``BatchTask.execute_item()``.

    Anything but SUCCEEDED rolls the item's unit of work back.
    """

    status: BatchItemStatus
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None


# =============================================================================
# BatchTask Protocol
# =============================================================================


@runtime_checkable
class BatchTask(Protocol):
    """A unit of maintenance work fanned out over products or alerts.

    ``prepare_items()`` runs once per run in a read unit of work and decides
    what the run covers; ``execute_item()`` runs once per item, inside a
    unit of work that holds the item's product locks.  Tasks never commit
    and never catch kernel errors; the executor does both.
    """

    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def prepare_items(
        self,
        parameters: dict[str, Any],
        services: EngineServices,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        """Items this run covers, in processing order.

        ``as_of`` is shared by every item of the run.  Reject bad
        ``parameters`` here so no item runs.
        """
        ...

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        services: EngineServices,
        as_of: datetime,
    ) -> BatchTaskResult:
        """Process one item; a StockKernelError marks it FAILED."""
        ...


# =============================================================================
# TaskRegistry
# =============================================================================


class TaskRegistry:
    """Tasks by ``task_type``; schedules and manual runs resolve through it."""

    def __init__(self) -> None:
        self._tasks: dict[str, BatchTask] = {}

    def register(self, task: BatchTask) -> None:
        """
        Raises:
            ValueError: task_type already registered.
        """
        if task.task_type in self._tasks:
            raise ValueError(
                f"Task type '{task.task_type}' is already registered"
            )
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> BatchTask:
        try:
            return self._tasks[task_type]
        except KeyError:
            raise TaskNotFoundError(task_type) from None

    def list_tasks(self) -> tuple[str, ...]:
        """Registered task types, sorted."""
        return tuple(sorted(self._tasks.keys()))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._tasks


def default_task_registry(settings: EngineSettings | None = None) -> TaskRegistry:
    """Create a registry holding the built-in tasks, tuned from settings."""
    from stock_batch.tasks.cleanup_tasks import AlertRetentionTask, ExpiryScanTask
    from stock_batch.tasks.monitoring_tasks import EventRedeliveryTask, StockAlertSweepTask
    from stock_batch.tasks.normalization_tasks import BulkNormalizationTask
    from stock_config.schema import EngineSettings

    settings = settings or EngineSettings()
    registry = TaskRegistry()
    registry.register(BulkNormalizationTask(settings.demand.bulk_window_days))
    registry.register(ExpiryScanTask())
    registry.register(AlertRetentionTask(settings.alerts.retention_days))
    registry.register(StockAlertSweepTask())
    registry.register(EventRedeliveryTask())
    return registry
