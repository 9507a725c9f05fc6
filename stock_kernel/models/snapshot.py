"""
Module: stock_kernel.models.snapshot
Responsibility: One-row-per-product derived inventory state.

Quantities, timestamps, state and flags are written only by the inventory
state aggregator.  minimum/maximum/reorder_point/location/blocked are
configuration fields and may be edited through the aggregator's threshold
operations, which re-derive state in the same flush.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class InventorySnapshotModel(TrackedBase):
    """Maps to: stock_kernel.domain.dtos.SnapshotView."""

    __tablename__ = "inventory_snapshots"

    __table_args__ = (
        Index("idx_snapshot_product", "product_id", unique=True),
        Index("idx_snapshot_state", "state"),
    )

    product_id: Mapped[UUID] = mapped_column()

    available: Mapped[int] = mapped_column(default=0)
    reserved: Mapped[int] = mapped_column(default=0)
    in_transit: Mapped[int] = mapped_column(default=0)

    # Configuration fields
    minimum: Mapped[int] = mapped_column(default=0)
    maximum: Mapped[int | None] = mapped_column(nullable=True)
    reorder_point: Mapped[int] = mapped_column(default=0)
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    block_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    last_movement_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_recomputed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    days_since_last_sale: Mapped[int | None] = mapped_column(nullable=True)

    # Derived (InventoryState enum stored as string)
    state: Mapped[str] = mapped_column(String(50), default="critical")
    needs_reorder: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    below_minimum: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def to_dto(self):
        from stock_kernel.domain.clock import ensure_utc
        from stock_kernel.domain.dtos import SnapshotView
        from stock_kernel.domain.types import InventoryState

        return SnapshotView(
            product_id=self.product_id,
            available=self.available,
            reserved=self.reserved,
            in_transit=self.in_transit,
            minimum=self.minimum,
            maximum=self.maximum,
            reorder_point=self.reorder_point,
            state=InventoryState(self.state),
            needs_reorder=self.needs_reorder,
            below_minimum=self.below_minimum,
            location=self.location,
            blocked=self.blocked,
            block_reason=self.block_reason,
            last_movement_at=ensure_utc(self.last_movement_at),
            last_recomputed_at=ensure_utc(self.last_recomputed_at),
            days_since_last_sale=self.days_since_last_sale,
        )

    def __repr__(self) -> str:
        return (
            f"<InventorySnapshotModel product={self.product_id} "
            f"available={self.available} state={self.state}>"
        )
