"""
Module: stock_kernel.models.purchase_order
Responsibility: Replenishment purchase orders and their lines.

Invariants enforced:
    - quantity_received <= quantity_ordered on every line (CheckConstraint
      plus service validation before any write).
    - order_number is unique.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase


class PurchaseOrderModel(TrackedBase):
    """Maps to: stock_kernel.domain.dtos.PurchaseOrderView."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        Index("idx_po_number", "order_number", unique=True),
        Index("idx_po_state", "state"),
        Index("idx_po_supplier", "supplier_id"),
    )

    order_number: Mapped[str] = mapped_column(String(50))
    supplier_id: Mapped[UUID] = mapped_column()
    state: Mapped[str] = mapped_column(String(50), default="draft")
    requested_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    optimization_result_id: Mapped[UUID | None] = mapped_column(nullable=True)
    alert_id: Mapped[UUID | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLineModel.line_number",
    )

    def to_dto(self):
        from stock_kernel.domain.clock import ensure_utc
        from stock_kernel.domain.dtos import PurchaseOrderView
        from stock_kernel.domain.types import OrderState

        return PurchaseOrderView(
            order_id=self.id,
            order_number=self.order_number,
            supplier_id=self.supplier_id,
            state=OrderState(self.state),
            requested_delivery_date=self.requested_delivery_date,
            lines=tuple(line.to_dto() for line in self.lines),
            optimization_result_id=self.optimization_result_id,
            alert_id=self.alert_id,
            notes=self.notes,
            confirmed_at=ensure_utc(self.confirmed_at),
            received_at=ensure_utc(self.received_at),
            cancelled_at=ensure_utc(self.cancelled_at),
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.order_number} state={self.state}>"


class PurchaseOrderLineModel(TrackedBase):
    """Maps to: stock_kernel.domain.dtos.OrderLineView."""

    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        Index("idx_po_line_order", "order_id"),
        Index("idx_po_line_product", "product_id"),
        CheckConstraint("quantity_received <= quantity_ordered", name="ck_po_line_not_over_received"),
        CheckConstraint("quantity_ordered > 0", name="ck_po_line_positive"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("purchase_orders.id"))
    line_number: Mapped[int] = mapped_column()
    product_id: Mapped[UUID] = mapped_column()
    quantity_ordered: Mapped[int] = mapped_column()
    quantity_received: Mapped[int] = mapped_column(default=0)
    unit_cost: Mapped[Decimal] = mapped_column()

    order: Mapped[PurchaseOrderModel] = relationship(back_populates="lines")

    @property
    def remaining(self) -> int:
        return self.quantity_ordered - self.quantity_received

    def to_dto(self):
        from stock_kernel.domain.dtos import OrderLineView

        return OrderLineView(
            line_id=self.id,
            product_id=self.product_id,
            quantity_ordered=self.quantity_ordered,
            quantity_received=self.quantity_received,
            unit_cost=self.unit_cost,
        )

    def __repr__(self) -> str:
        return (
            f"<PurchaseOrderLineModel #{self.line_number} product={self.product_id} "
            f"{self.quantity_received}/{self.quantity_ordered}>"
        )
