"""
Batch tasks: expiry scanning and closed-alert retention.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import UUID

from stock_batch.domain.types import BatchItemStatus
from stock_batch.tasks.base import BatchItemInput, BatchTaskResult
from stock_kernel.domain.types import SYSTEM_ACTOR_ID
from stock_kernel.exceptions import InvalidParametersError

if TYPE_CHECKING:
    from stock_services.replenishment_engine import EngineServices


class ExpiryScanTask:
    """Open EXPIRED / EXPIRY_SOON alerts, one item per product."""

    @property
    def task_type(self) -> str:
        return "expiry_scan"

    @property
    def description(self) -> str:
        return "Raise alerts for stocked lots that expired or expire soon"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        services: EngineServices,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=str(product_id),
                product_ids=(product_id,),
            )
            for i, product_id in enumerate(services.normalizer.product_ids())
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        services: EngineServices,
        as_of: datetime,
    ) -> BatchTaskResult:
        opened = services.alerts.evaluate_expiry(
            item.product_ids[0], SYSTEM_ACTOR_ID, as_of.date(),
        )
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={"alerts_opened": [str(alert.alert_id) for alert in opened]},
        )


class AlertRetentionTask:
    """Delete closed alerts older than the retention period.

    One item per alert, so a row that cannot be removed does not keep the
    rest.  Open alerts are never touched.

    Parameters:
        retention_days: age threshold in days (defaults to the task's own).
    """

    def __init__(self, retention_days: int = 90):
        self._retention_days = retention_days

    @property
    def task_type(self) -> str:
        return "alert_retention"

    @property
    def description(self) -> str:
        return "Purge resolved and ignored alerts past the retention period"

    def _cutoff(self, parameters: dict[str, Any], as_of: datetime) -> datetime:
        days = int(parameters.get("retention_days", self._retention_days))
        if days < 0:
            raise InvalidParametersError("retention_days", f"must be non-negative, got {days}")
        return as_of - timedelta(days=days)

    def prepare_items(
        self,
        parameters: dict[str, Any],
        services: EngineServices,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        cutoff = self._cutoff(parameters, as_of)
        return tuple(
            BatchItemInput(item_index=i, item_key=str(alert_id))
            for i, alert_id in enumerate(services.alerts.closed_alert_ids(cutoff))
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        services: EngineServices,
        as_of: datetime,
    ) -> BatchTaskResult:
        removed = services.alerts.purge_closed(
            self._cutoff(parameters, as_of), [UUID(item.item_key)],
        )
        if removed == 0:
            # Purged by a concurrent run between prepare and execute.
            return BatchTaskResult(status=BatchItemStatus.SKIPPED)
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={"removed": removed},
        )
