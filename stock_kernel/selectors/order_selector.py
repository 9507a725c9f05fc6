"""
PurchaseOrderSelector -- purchase order reads.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import PurchaseOrderView
from stock_kernel.domain.types import OrderState
from stock_kernel.exceptions import PurchaseOrderNotFoundError
from stock_kernel.models.purchase_order import PurchaseOrderModel
from stock_kernel.selectors.base import BaseSelector


class PurchaseOrderSelector(BaseSelector):

    def get(self, order_id: UUID) -> PurchaseOrderView:
        model = self.session.get(PurchaseOrderModel, order_id)
        if model is None:
            raise PurchaseOrderNotFoundError(order_id)
        return model.to_dto()

    def list_orders(
        self,
        supplier_id: UUID | None = None,
        states: tuple[OrderState, ...] = (),
    ) -> list[PurchaseOrderView]:
        stmt = select(PurchaseOrderModel).order_by(PurchaseOrderModel.order_number)
        if supplier_id is not None:
            stmt = stmt.where(PurchaseOrderModel.supplier_id == supplier_id)
        if states:
            stmt = stmt.where(PurchaseOrderModel.state.in_([s.value for s in states]))
        return [m.to_dto() for m in self.session.scalars(stmt)]
