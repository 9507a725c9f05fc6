"""
DemandSelector -- read access to the normalized daily demand series.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import DemandRecordView
from stock_kernel.models.demand import DemandRecordModel
from stock_kernel.selectors.base import BaseSelector


class DemandSelector(BaseSelector):

    def records_between(
        self,
        product_id: UUID,
        start: date,
        end: date,
    ) -> list[DemandRecordView]:
        """Demand records with ``start <= demand_date <= end``, oldest first."""
        stmt = (
            select(DemandRecordModel)
            .where(DemandRecordModel.product_id == product_id)
            .where(DemandRecordModel.demand_date >= start)
            .where(DemandRecordModel.demand_date <= end)
            .order_by(DemandRecordModel.demand_date)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def quantities_by_date(self, product_id: UUID, start: date, end: date) -> dict[date, int]:
        return {
            r.demand_date: r.quantity
            for r in self.records_between(product_id, start, end)
        }
