"""
InventorySelector -- snapshot reads and open-order exposure.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.dtos import SnapshotView
from stock_kernel.domain.types import OPEN_ORDER_STATES, InventoryState
from stock_kernel.exceptions import SnapshotNotFoundError
from stock_kernel.models.purchase_order import PurchaseOrderLineModel, PurchaseOrderModel
from stock_kernel.models.snapshot import InventorySnapshotModel
from stock_kernel.selectors.base import BaseSelector

_OPEN_ORDER_VALUES = tuple(s.value for s in OPEN_ORDER_STATES)


class InventorySelector(BaseSelector):

    def find_snapshot(self, product_id: UUID) -> SnapshotView | None:
        model = self.session.execute(
            select(InventorySnapshotModel)
            .where(InventorySnapshotModel.product_id == product_id)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def get_snapshot(self, product_id: UUID) -> SnapshotView:
        """
        Raises:
            SnapshotNotFoundError: If the product never touched the ledger
                and has no configured thresholds.
        """
        snapshot = self.find_snapshot(product_id)
        if snapshot is None:
            raise SnapshotNotFoundError(product_id)
        return snapshot

    def list_snapshots(self, states: tuple[InventoryState, ...] = ()) -> list[SnapshotView]:
        stmt = select(InventorySnapshotModel).order_by(InventorySnapshotModel.product_id)
        if states:
            stmt = stmt.where(InventorySnapshotModel.state.in_([s.value for s in states]))
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def in_transit_quantity(self, product_id: UUID) -> int:
        """Outstanding (ordered - received) quantity on confirmed, open orders."""
        total = self.session.execute(
            select(
                func.coalesce(
                    func.sum(
                        PurchaseOrderLineModel.quantity_ordered
                        - PurchaseOrderLineModel.quantity_received
                    ),
                    0,
                )
            )
            .select_from(PurchaseOrderLineModel)
            .join(PurchaseOrderModel, PurchaseOrderLineModel.order_id == PurchaseOrderModel.id)
            .where(PurchaseOrderLineModel.product_id == product_id)
            .where(PurchaseOrderModel.state.in_(_OPEN_ORDER_VALUES))
        ).scalar_one()
        return int(total)
