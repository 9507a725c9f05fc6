"""
Module: stock_kernel.models.delivery
Responsibility: Ledger events a subscriber failed to process.

One row per (subscriber, movement, voided) that is still owed a delivery.
The row carries the full event so it can be replayed without reading the
movement back; it is deleted in the same transaction that redelivers it.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class FailedDeliveryModel(Base):
    """Maps to: stock_kernel.domain.dtos.PendingDelivery."""

    __tablename__ = "failed_deliveries"

    __table_args__ = (
        UniqueConstraint(
            "subscriber", "movement_id", "voided", name="uq_delivery_subscriber_event",
        ),
        Index("idx_delivery_failed_at", "first_failed_at"),
    )

    subscriber: Mapped[str] = mapped_column(String(100))

    # The event as published
    movement_id: Mapped[UUID] = mapped_column()
    product_id: Mapped[UUID] = mapped_column()
    kind: Mapped[str] = mapped_column(String(50))
    quantity: Mapped[int] = mapped_column()
    occurred_at: Mapped[datetime] = mapped_column()
    voided: Mapped[bool] = mapped_column(default=False)

    failure_count: Mapped[int] = mapped_column(default=1)
    error_type: Mapped[str] = mapped_column(String(200))
    error_message: Mapped[str] = mapped_column(Text, default="")
    first_failed_at: Mapped[datetime] = mapped_column()
    last_failed_at: Mapped[datetime] = mapped_column()

    def to_dto(self):
        from stock_kernel.domain.clock import ensure_utc
        from stock_kernel.domain.dtos import PendingDelivery
        from stock_kernel.domain.events import MovementCommitted
        from stock_kernel.domain.types import MovementKind

        return PendingDelivery(
            delivery_id=self.id,
            subscriber=self.subscriber,
            event=MovementCommitted(
                movement_id=self.movement_id,
                product_id=self.product_id,
                kind=MovementKind(self.kind),
                quantity=self.quantity,
                occurred_at=ensure_utc(self.occurred_at),
                voided=self.voided,
            ),
            failure_count=self.failure_count,
            error_type=self.error_type,
            error_message=self.error_message or "",
            first_failed_at=ensure_utc(self.first_failed_at),
            last_failed_at=ensure_utc(self.last_failed_at),
        )

    def __repr__(self) -> str:
        return f"<FailedDeliveryModel {self.subscriber} movement={self.movement_id}>"
