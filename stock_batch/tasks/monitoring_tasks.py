"""
Batch tasks: periodic stock sweep and event redelivery.

Movements keep snapshots and alerts current as they happen.  These tasks
cover what no movement triggers: stock ageing while a product sits idle,
and subscriber work that failed after its movement committed.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from stock_batch.domain.types import BatchItemStatus
from stock_batch.tasks.base import BatchItemInput, BatchTaskResult
from stock_kernel.domain.types import SYSTEM_ACTOR_ID
from stock_kernel.exceptions import InvalidParametersError

if TYPE_CHECKING:
    from stock_services.replenishment_engine import EngineServices


class StockAlertSweepTask:
    """Recompute every tracked product's snapshot, then evaluate its alerts.

    Days since the last sale only move when the snapshot is recomputed, so
    without this sweep an idle product never turns OBSOLETE.  One item per
    product that has a snapshot.
    """

    @property
    def task_type(self) -> str:
        return "stock_alert_sweep"

    @property
    def description(self) -> str:
        return "Refresh inventory state and raise stock alerts for every product"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        services: EngineServices,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        product_ids = sorted(
            (snapshot.product_id for snapshot in services.inventory.list_snapshots()),
            key=str,
        )
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=str(product_id),
                product_ids=(product_id,),
            )
            for i, product_id in enumerate(product_ids)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        services: EngineServices,
        as_of: datetime,
    ) -> BatchTaskResult:
        product_id = item.product_ids[0]
        snapshot = services.aggregator.recompute(product_id, SYSTEM_ACTOR_ID)
        opened = services.alerts.evaluate(product_id, SYSTEM_ACTOR_ID)
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={
                "state": snapshot.state.value,
                "alerts_opened": [str(alert.alert_id) for alert in opened],
            },
        )


class EventRedeliveryTask:
    """Replay committed events whose subscriber failed, one item per delivery.

    The subscriber's work and the removal of the queue row commit together;
    a delivery that fails again stays queued for the next run.

    Parameters:
        limit: most deliveries to replay in one run (defaults to all).
    """

    @property
    def task_type(self) -> str:
        return "event_redelivery"

    @property
    def description(self) -> str:
        return "Redeliver ledger events to subscribers that failed to process them"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        services: EngineServices,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        limit = parameters.get("limit")
        if limit is not None and int(limit) <= 0:
            raise InvalidParametersError("limit", f"must be positive, got {limit}")
        pending = services.deliveries.pending(int(limit) if limit is not None else None)
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=str(delivery.delivery_id),
                payload={
                    "subscriber": delivery.subscriber,
                    "movement_id": str(delivery.event.movement_id),
                },
                product_ids=(delivery.event.product_id,),
            )
            for i, delivery in enumerate(pending)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        services: EngineServices,
        as_of: datetime,
    ) -> BatchTaskResult:
        delivery = services.deliveries.get(UUID(item.item_key))
        if delivery is None:
            # Redelivered by a concurrent run between prepare and execute.
            return BatchTaskResult(status=BatchItemStatus.SKIPPED)

        services.deliver(delivery.subscriber, delivery.event)
        services.deliveries.mark_delivered(delivery.delivery_id)
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={
                "subscriber": delivery.subscriber,
                "movement_id": str(delivery.event.movement_id),
            },
        )
