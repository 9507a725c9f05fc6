"""
DeliveryRetryQueue -- ledger events still owed to a subscriber.

Responsibility:
    Persists a committed event whose subscriber failed, lists what is
    pending, and removes a row once the event has been delivered again.

Architecture position:
    Kernel > Services -- imperative shell.
    Written by ReplenishmentEngine after a failed post-commit delivery;
    drained by the event redelivery batch task, which runs the subscriber's
    work and ``mark_delivered`` in the same transaction.

Invariants enforced:
    - At most one pending row per (subscriber, movement, voided).  A repeat
      failure bumps ``failure_count`` instead of adding a row.
    - A row is removed only by the transaction that redelivers it, so a
      failed redelivery leaves it pending.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import PendingDelivery
from stock_kernel.domain.events import MovementCommitted
from stock_kernel.logging_config import get_logger
from stock_kernel.models.delivery import FailedDeliveryModel
from stock_kernel.services.base import BaseService

logger = get_logger("services.delivery")


class DeliveryRetryQueue(BaseService):

    def _find(self, subscriber: str, event: MovementCommitted) -> FailedDeliveryModel | None:
        return self.session.execute(
            select(FailedDeliveryModel).where(
                FailedDeliveryModel.subscriber == subscriber,
                FailedDeliveryModel.movement_id == event.movement_id,
                FailedDeliveryModel.voided == event.voided,
            )
        ).scalar_one_or_none()

    def record(
        self,
        subscriber: str,
        event: MovementCommitted,
        error_type: str,
        message: str,
    ) -> PendingDelivery:
        """Queue ``event`` for ``subscriber``, or count another failure."""
        now = self.clock.now()
        model = self._find(subscriber, event)
        if model is None:
            model = FailedDeliveryModel(
                subscriber=subscriber,
                movement_id=event.movement_id,
                product_id=event.product_id,
                kind=event.kind.value,
                quantity=event.quantity,
                occurred_at=event.occurred_at,
                voided=event.voided,
                failure_count=1,
                error_type=error_type,
                error_message=message,
                first_failed_at=now,
                last_failed_at=now,
            )
            self.session.add(model)
        else:
            model.failure_count += 1
            model.error_type = error_type
            model.error_message = message
            model.last_failed_at = now
        self.session.flush()

        logger.warning(
            "event_delivery_queued",
            extra={
                "subscriber": subscriber,
                "movement_id": str(event.movement_id),
                "product_id": str(event.product_id),
                "failure_count": model.failure_count,
            },
        )
        return model.to_dto()

    def pending(self, limit: int | None = None) -> list[PendingDelivery]:
        """Pending deliveries, oldest failure first."""
        stmt = select(FailedDeliveryModel).order_by(
            FailedDeliveryModel.first_failed_at, FailedDeliveryModel.id,
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def get(self, delivery_id: UUID) -> PendingDelivery | None:
        model = self.session.get(FailedDeliveryModel, delivery_id)
        return model.to_dto() if model is not None else None

    def mark_delivered(self, delivery_id: UUID) -> bool:
        """Remove a delivered row.  False when it was already gone."""
        model = self.session.get(FailedDeliveryModel, delivery_id)
        if model is None:
            return False
        logger.info(
            "event_redelivered",
            extra={
                "subscriber": model.subscriber,
                "movement_id": str(model.movement_id),
                "failure_count": model.failure_count,
            },
        )
        self.session.delete(model)
        self.session.flush()
        return True
