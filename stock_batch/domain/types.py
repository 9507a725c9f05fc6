"""
stock_batch.domain.types -- Pure frozen dataclasses for the batch system.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


# =============================================================================
# Status enums
# =============================================================================


class BatchRunStatus(str, Enum):
    """Outcome of one run of a batch task."""

    COMPLETED = "completed"  # Every item succeeded
    PARTIALLY_COMPLETED = "partially_completed"  # Some items failed or skipped
    FAILED = "failed"  # No item succeeded
    ABORTED = "aborted"  # Infrastructure failure stopped the run


class BatchItemStatus(str, Enum):
    """Per-item outcome within a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # Not run (cancelled, aborted run, nothing to do)


class ScheduleFrequency(str, Enum):
    """Recurrence frequency for scheduled batch jobs."""

    ONCE = "once"  # Fire once, no recurrence
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    ON_DEMAND = "on_demand"  # Manual trigger only


# =============================================================================
# Run DTOs
# =============================================================================


@dataclass(frozen=True)
class BatchItemResult:
    """Immutable result of processing a single batch item."""

    item_index: int  # 0-indexed position in the run
    item_key: str  # Business identifier (product id, alert id)
    status: BatchItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class BatchRunResult:
    """Immutable result of one run of a batch task.

    Returned by ``BatchExecutor.run()``.
    """

    run_id: UUID
    task_type: str
    status: BatchRunStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    @property
    def failed_items(self) -> tuple[BatchItemResult, ...]:
        return tuple(
            r for r in self.item_results if r.status == BatchItemStatus.FAILED
        )


# =============================================================================
# Schedule DTOs
# =============================================================================


@dataclass(frozen=True)
class JobSchedule:
    """Immutable snapshot of a recurring job schedule.

    The scheduler replaces the snapshot after every run; evaluation reads
    ``next_run_at`` and the current clock only.
    """

    job_name: str  # Unique label within a scheduler
    task_type: str  # Registered task key
    frequency: ScheduleFrequency
    parameters: dict[str, Any] = field(default_factory=dict)
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    last_run_status: BatchRunStatus | None = None
    is_active: bool = True
    schedule_id: UUID = field(default_factory=uuid4)
