"""
Batch tasks: demand normalization.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from stock_batch.domain.types import BatchItemStatus
from stock_batch.tasks.base import BatchItemInput, BatchTaskResult
from stock_kernel.services.demand_service import window_dates

if TYPE_CHECKING:
    from stock_services.replenishment_engine import EngineServices


class BulkNormalizationTask:
    """Rebuild the demand series of every product, one item per product.

    Parameters:
        window_days: trailing window in days (defaults to the task's own).
    """

    def __init__(self, window_days: int = 30):
        self._window_days = window_days

    @property
    def task_type(self) -> str:
        return "bulk_normalization"

    @property
    def description(self) -> str:
        return "Normalize sale movements into daily demand for every product"

    def _window(self, parameters: dict[str, Any]) -> int:
        return int(parameters.get("window_days", self._window_days))

    def prepare_items(
        self,
        parameters: dict[str, Any],
        services: EngineServices,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        # Reject a bad window before any item runs.
        window_dates(as_of.date(), self._window(parameters))
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=str(product_id),
                payload={"product_id": str(product_id)},
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
        written = services.normalizer.normalize(
            item.product_ids[0], self._window(parameters), as_of.date(),
        )
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={"records_written": written},
        )
