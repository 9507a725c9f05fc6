"""ORM models.  Importing this package registers every table on Base.metadata."""

from stock_kernel.models.alert import AlertModel
from stock_kernel.models.delivery import FailedDeliveryModel
from stock_kernel.models.demand import DemandRecordModel
from stock_kernel.models.movement import MOVEMENT_MUTABLE_FIELDS, MovementModel
from stock_kernel.models.optimization import OptimizationResultModel
from stock_kernel.models.purchase_order import PurchaseOrderLineModel, PurchaseOrderModel
from stock_kernel.models.sequence import SequenceCounter
from stock_kernel.models.snapshot import InventorySnapshotModel

__all__ = [
    "AlertModel",
    "DemandRecordModel",
    "FailedDeliveryModel",
    "InventorySnapshotModel",
    "MOVEMENT_MUTABLE_FIELDS",
    "MovementModel",
    "OptimizationResultModel",
    "PurchaseOrderLineModel",
    "PurchaseOrderModel",
    "SequenceCounter",
]
