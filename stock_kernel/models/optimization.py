"""
Module: stock_kernel.models.optimization
Responsibility: Persisted EOQ/ROP optimization results.

Rows are immutable once inserted; a newer row for the same product
supersedes an older one.  The latest row per product (highest sequence) is the
authoritative reorder point for alert evaluation.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase

_TWO_PLACES = Decimal("0.01")


def _plan_value(value: Decimal | None) -> Decimal | None:
    # Numeric(38, 9) reads back with nine places; outputs are reported with two.
    if value is None:
        return None
    return value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


class OptimizationResultModel(TrackedBase):
    """Maps to: stock_kernel.domain.dtos.OptimizationOutcome."""

    __tablename__ = "optimization_results"

    __table_args__ = (
        Index("idx_optimization_product_seq", "product_id", "sequence"),
    )

    product_id: Mapped[UUID] = mapped_column()
    sequence: Mapped[int] = mapped_column()
    computed_at: Mapped[datetime] = mapped_column()

    # Inputs
    annual_demand: Mapped[Decimal] = mapped_column()
    holding_cost: Mapped[Decimal] = mapped_column()
    order_cost: Mapped[Decimal] = mapped_column()
    lead_time_days: Mapped[int] = mapped_column()
    unit_cost: Mapped[Decimal] = mapped_column()
    supplied_safety_stock: Mapped[Decimal | None] = mapped_column(nullable=True)
    service_level_factor: Mapped[Decimal] = mapped_column()
    demand_window_days: Mapped[int] = mapped_column()
    demand_std_dev: Mapped[Decimal] = mapped_column()

    # Outputs
    eoq: Mapped[Decimal] = mapped_column()
    average_daily_demand: Mapped[Decimal] = mapped_column()
    reorder_point: Mapped[Decimal] = mapped_column()
    suggested_safety_stock: Mapped[Decimal] = mapped_column()
    safety_stock_used: Mapped[Decimal] = mapped_column()
    total_annual_cost: Mapped[Decimal] = mapped_column()
    orders_per_year: Mapped[Decimal] = mapped_column()
    days_between_orders: Mapped[Decimal | None] = mapped_column(nullable=True)

    def to_dto(self):
        from stock_kernel.domain.clock import ensure_utc
        from stock_kernel.domain.dtos import OptimizationOutcome

        return OptimizationOutcome(
            result_id=self.id,
            product_id=self.product_id,
            computed_at=ensure_utc(self.computed_at),
            annual_demand=self.annual_demand,
            holding_cost=self.holding_cost,
            order_cost=self.order_cost,
            lead_time_days=self.lead_time_days,
            unit_cost=self.unit_cost,
            service_level_factor=self.service_level_factor,
            demand_window_days=self.demand_window_days,
            demand_std_dev=self.demand_std_dev,
            eoq=_plan_value(self.eoq),
            reorder_point=_plan_value(self.reorder_point),
            suggested_safety_stock=_plan_value(self.suggested_safety_stock),
            safety_stock_used=_plan_value(self.safety_stock_used),
            total_annual_cost=_plan_value(self.total_annual_cost),
            orders_per_year=_plan_value(self.orders_per_year),
            average_daily_demand=_plan_value(self.average_daily_demand),
            days_between_orders=_plan_value(self.days_between_orders),
            supplied_safety_stock=self.supplied_safety_stock,
        )

    def __repr__(self) -> str:
        return (
            f"<OptimizationResultModel product={self.product_id} "
            f"eoq={self.eoq} rop={self.reorder_point}>"
        )
