"""
Module: stock_kernel.models.demand
Responsibility: Daily per-product demand series derived from sale movements.

At most one row per (product_id, demand_date); normalization replaces the
quantity rather than adding to it.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class DemandRecordModel(Base):
    """Maps to: stock_kernel.domain.dtos.DemandRecordView."""

    __tablename__ = "demand_records"

    __table_args__ = (
        UniqueConstraint("product_id", "demand_date", name="uq_demand_product_date"),
        Index("idx_demand_period", "product_id", "period"),
    )

    product_id: Mapped[UUID] = mapped_column()
    demand_date: Mapped[date] = mapped_column(Date)
    quantity: Mapped[int] = mapped_column()
    period: Mapped[str] = mapped_column(String(7))  # YYYY-MM
    normalized_at: Mapped[datetime] = mapped_column()

    def to_dto(self):
        from stock_kernel.domain.dtos import DemandRecordView

        return DemandRecordView(
            product_id=self.product_id,
            demand_date=self.demand_date,
            quantity=self.quantity,
            period=self.period,
        )

    def __repr__(self) -> str:
        return f"<DemandRecordModel {self.product_id} {self.demand_date} qty={self.quantity}>"
