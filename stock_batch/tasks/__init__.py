"""
stock_batch.tasks -- Task protocol, registry, and built-in task implementations.
"""

from stock_batch.tasks.base import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
    default_task_registry,
)
from stock_batch.tasks.cleanup_tasks import AlertRetentionTask, ExpiryScanTask
from stock_batch.tasks.monitoring_tasks import EventRedeliveryTask, StockAlertSweepTask
from stock_batch.tasks.normalization_tasks import BulkNormalizationTask

__all__ = [
    "AlertRetentionTask",
    "BatchItemInput",
    "BatchTask",
    "BatchTaskResult",
    "BulkNormalizationTask",
    "EventRedeliveryTask",
    "ExpiryScanTask",
    "StockAlertSweepTask",
    "TaskRegistry",
    "default_task_registry",
]
