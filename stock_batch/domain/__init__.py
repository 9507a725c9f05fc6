"""
stock_batch.domain -- Pure types and schedule evaluation for batch processing.

ZERO I/O.  All types are frozen dataclasses.
"""

from stock_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchRunResult,
    BatchRunStatus,
    JobSchedule,
    ScheduleFrequency,
)

__all__ = [
    "BatchItemResult",
    "BatchItemStatus",
    "BatchRunResult",
    "BatchRunStatus",
    "JobSchedule",
    "ScheduleFrequency",
]
