"""
PurchaseOrderWorkflow -- replenishment orders from optimization to receipt.

Responsibility:
    Generates DRAFT purchase orders from optimization results (one result
    directly or via a replenishment alert, or many grouped per supplier),
    confirms and cancels them, and receives goods against them.  Receipts
    are appended to the movement ledger, which closes the replenishment
    loop.

Architecture position:
    Kernel > Services -- imperative shell.
    Composes MovementLedger (receipts) and AlertEngine (claim on generation,
    auto-resolve on receipt).  Snapshot recomputes for the affected
    products are run by the caller in the same transaction.

Invariants enforced:
    - quantity_received <= quantity_ordered on every line.
    - Every state change resolves through PURCHASE_ORDER_WORKFLOW, so state
      is monotonic and RECEIVED / CANCELLED are terminal.
    - Receiving is all-or-nothing: every receipt line is validated before
      the first movement is appended.

Failure modes:
    - OptimizationResultNotFoundError, NoSupplierAssignedError,
      SupplierNotFoundError, InvalidOrderQuantityError (generation).
    - OrderAlreadyConfirmedError (confirm), OrderClosedError /
      InvalidOrderTransitionError (cancel).
    - OrderNotReceivableError, ReceivingValidationError (receive).
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timedelta
from decimal import ROUND_CEILING, Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.catalog import ReferenceCatalog
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import (
    MovementDraft,
    OptimizationOutcome,
    PurchaseOrderView,
    ReceiptLine,
    ReceiptOutcome,
)
from stock_kernel.domain.lifecycles import ALL_LINES_RECEIVED, PURCHASE_ORDER_WORKFLOW
from stock_kernel.domain.types import (
    OPEN_ORDER_STATES,
    AlertAction,
    AlertState,
    MovementKind,
    OrderPolicy,
    OrderState,
)
from stock_kernel.exceptions import (
    AlertAlreadyClosedError,
    InvalidOrderQuantityError,
    InvalidOrderTransitionError,
    InvalidParametersError,
    NoSupplierAssignedError,
    OptimizationResultNotFoundError,
    OrderAlreadyConfirmedError,
    OrderClosedError,
    OrderLineNotFoundError,
    OrderNotReceivableError,
    OverReceiptError,
    ProductNotFoundError,
    PurchaseOrderNotFoundError,
    ReceivingValidationError,
    SupplierNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.purchase_order import PurchaseOrderLineModel, PurchaseOrderModel
from stock_kernel.selectors.alert_selector import AlertSelector
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.optimization_selector import OptimizationSelector
from stock_kernel.services.alert_service import AlertEngine
from stock_kernel.services.base import BaseService
from stock_kernel.services.ledger_service import MovementLedger
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.purchase_order")


def _ceil(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_CEILING))


def order_number_for(day: date, sequence: int) -> str:
    """``PO-YYYYMMDD-NNNNN``."""
    return f"PO-{day:%Y%m%d}-{sequence:05d}"


class PurchaseOrderWorkflow(BaseService):

    def __init__(
        self,
        session: Session,
        catalog: ReferenceCatalog,
        ledger: MovementLedger,
        alerts: AlertEngine,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._catalog = catalog
        self._ledger = ledger
        self._alert_engine = alerts
        self._alerts = AlertSelector(session)
        self._inventory = InventorySelector(session)
        self._optimizations = OptimizationSelector(session)
        self._sequences = SequenceService(session)

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def _base_quantity(self, result: OptimizationOutcome, policy: OrderPolicy) -> int:
        if policy == OrderPolicy.EOQ:
            return _ceil(result.eoq)
        snapshot = self._inventory.find_snapshot(result.product_id)
        available = snapshot.available if snapshot is not None else 0
        in_transit = self._inventory.in_transit_quantity(result.product_id)
        shortfall = result.reorder_point + result.eoq - Decimal(available + in_transit)
        return max(_ceil(shortfall), 0)

    def _supplier_for(self, product_id: UUID) -> UUID:
        product = self._catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        if product.supplier_id is None:
            raise NoSupplierAssignedError(product_id)
        if self._catalog.get_supplier(product.supplier_id) is None:
            raise SupplierNotFoundError(product.supplier_id)
        return product.supplier_id

    def _create_order(
        self,
        supplier_id: UUID,
        lines: Sequence[tuple[OptimizationOutcome, int]],
        actor_id: UUID,
        notes: str | None,
        alert_id: UUID | None = None,
    ) -> PurchaseOrderModel:
        """DRAFT order with one line per (result, quantity), in the given order."""
        today = self.clock.today()
        number = order_number_for(
            today, self._sequences.next_value(SequenceService.PURCHASE_ORDER)
        )
        lead_time = max(result.lead_time_days for result, _ in lines)
        order = PurchaseOrderModel(
            order_number=number,
            supplier_id=supplier_id,
            state=PURCHASE_ORDER_WORKFLOW.initial_state,
            requested_delivery_date=today + timedelta(days=lead_time),
            # A multi-product order has no single originating result.
            optimization_result_id=lines[0][0].result_id if len(lines) == 1 else None,
            alert_id=alert_id,
            notes=notes,
            created_by_id=actor_id,
        )
        for line_number, (result, quantity) in enumerate(lines, start=1):
            order.lines.append(PurchaseOrderLineModel(
                line_number=line_number,
                product_id=result.product_id,
                quantity_ordered=quantity,
                quantity_received=0,
                unit_cost=result.unit_cost,
                created_by_id=actor_id,
            ))
        self.session.add(order)
        self.session.flush()
        return order

    def generate_from_optimization(
        self,
        optimization_result_id: UUID,
        actor_id: UUID,
        extra_quantity: int = 0,
        notes: str | None = None,
        policy: OrderPolicy = OrderPolicy.EOQ,
        alert_id: UUID | None = None,
    ) -> PurchaseOrderView:
        """
        Create a DRAFT order with one line for the result's product.

        Under the EOQ policy the quantity is ceil(EOQ); under SHORTFALL it
        tops stock plus in-transit up to ROP + EOQ.  ``extra_quantity`` is
        added on top.

        Raises:
            OptimizationResultNotFoundError, NoSupplierAssignedError,
            SupplierNotFoundError, InvalidOrderQuantityError.
        """
        result = self._optimizations.get(optimization_result_id)
        supplier_id = self._supplier_for(result.product_id)
        if extra_quantity < 0:
            raise InvalidParametersError(
                "extra_quantity", f"must be non-negative, got {extra_quantity}"
            )

        policy = OrderPolicy(policy)
        quantity = self._base_quantity(result, policy) + extra_quantity
        if quantity <= 0:
            raise InvalidOrderQuantityError(result.product_id, quantity)

        order = self._create_order(
            supplier_id, [(result, quantity)], actor_id, notes, alert_id,
        )
        logger.info(
            "purchase_order_created",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "product_id": str(result.product_id),
                "quantity": quantity,
                "policy": policy.value,
            },
        )
        return order.to_dto()

    def generate_by_supplier(
        self,
        optimization_result_ids: Sequence[UUID],
        actor_id: UUID,
        notes: str | None = None,
        policy: OrderPolicy = OrderPolicy.EOQ,
    ) -> list[PurchaseOrderView]:
        """
        Group results by the supplier of their product and create one DRAFT
        order per supplier, with one line per product.

        Line quantities follow ``policy`` as in ``generate_from_optimization``.
        Under SHORTFALL a product already covered by stock and in-transit
        gets no line, and a supplier left with no lines gets no order.
        Orders are returned sorted by supplier.

        Raises:
            InvalidParametersError: No results, or two results for the same
                product.
            OptimizationResultNotFoundError, NoSupplierAssignedError,
            SupplierNotFoundError.
            InvalidOrderQuantityError: Nothing needs ordering.
        """
        if not optimization_result_ids:
            raise InvalidParametersError(
                "optimization_result_ids", "at least one result is required"
            )
        policy = OrderPolicy(policy)

        by_supplier: dict[UUID, list[tuple[OptimizationOutcome, int]]] = {}
        seen: set[UUID] = set()
        first_product: UUID | None = None
        for result_id in optimization_result_ids:
            result = self._optimizations.get(result_id)
            if result.product_id in seen:
                raise InvalidParametersError(
                    "optimization_result_ids",
                    f"product {result.product_id} appears more than once",
                )
            seen.add(result.product_id)
            first_product = first_product or result.product_id

            supplier_id = self._supplier_for(result.product_id)
            quantity = self._base_quantity(result, policy)
            if quantity > 0:
                by_supplier.setdefault(supplier_id, []).append((result, quantity))

        if not by_supplier:
            raise InvalidOrderQuantityError(first_product, 0)

        orders = []
        for supplier_id in sorted(by_supplier, key=str):
            lines = by_supplier[supplier_id]
            order = self._create_order(supplier_id, lines, actor_id, notes)
            logger.info(
                "purchase_order_created",
                extra={
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "supplier_id": str(supplier_id),
                    "lines": len(lines),
                    "policy": policy.value,
                },
            )
            orders.append(order.to_dto())
        return orders

    def generate_from_alert(
        self,
        alert_id: UUID,
        actor_id: UUID,
        extra_quantity: int = 0,
        notes: str | None = None,
        policy: OrderPolicy = OrderPolicy.EOQ,
    ) -> PurchaseOrderView:
        """
        Order against the latest optimization result of the alert's
        product.  A PENDING alert is claimed by the actor.

        Raises:
            AlertNotFoundError, AlertAlreadyClosedError,
            OptimizationResultNotFoundError (no result for the product),
            and everything ``generate_from_optimization`` raises.
        """
        alert = self._alerts.get(alert_id)
        if alert.state.is_terminal:
            raise AlertAlreadyClosedError(alert_id, alert.state.value)

        latest = self._optimizations.latest_for_product(alert.product_id)
        if latest is None:
            raise OptimizationResultNotFoundError(alert.product_id)

        order = self.generate_from_optimization(
            latest.result_id,
            actor_id,
            extra_quantity=extra_quantity,
            notes=notes,
            policy=policy,
            alert_id=alert_id,
        )
        if alert.state == AlertState.PENDING:
            self._alert_engine.transition(alert_id, AlertAction.CLAIM, actor_id)
        return order

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _locked_order(self, order_id: UUID) -> PurchaseOrderModel:
        order = self.session.execute(
            select(PurchaseOrderModel)
            .where(PurchaseOrderModel.id == order_id)
            .with_for_update()
        ).scalar_one_or_none()
        if order is None:
            raise PurchaseOrderNotFoundError(order_id)
        return order

    def confirm(self, order_id: UUID, actor_id: UUID) -> PurchaseOrderView:
        """
        DRAFT -> CONFIRMED.  Confirmed lines count as in-transit stock.

        Raises:
            PurchaseOrderNotFoundError, OrderAlreadyConfirmedError.
        """
        order = self._locked_order(order_id)
        transition = PURCHASE_ORDER_WORKFLOW.transition_for(order.state, "confirm")
        if transition is None:
            raise OrderAlreadyConfirmedError(order_id, order.state)

        order.state = transition.to_state
        order.confirmed_at = self.clock.now()
        order.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "purchase_order_confirmed",
            extra={"order_id": str(order_id), "order_number": order.order_number},
        )
        return order.to_dto()

    def cancel(
        self,
        order_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PurchaseOrderView:
        """
        DRAFT or CONFIRMED -> CANCELLED.

        Raises:
            PurchaseOrderNotFoundError, OrderClosedError (terminal),
            InvalidOrderTransitionError (goods already received).
        """
        order = self._locked_order(order_id)
        if PURCHASE_ORDER_WORKFLOW.is_terminal(order.state):
            raise OrderClosedError(order_id, order.state)
        transition = PURCHASE_ORDER_WORKFLOW.transition_for(order.state, "cancel")
        if transition is None:
            raise InvalidOrderTransitionError(order_id, order.state, "cancel")

        order.state = transition.to_state
        order.cancelled_at = self.clock.now()
        order.cancel_reason = reason
        order.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "purchase_order_cancelled",
            extra={"order_id": str(order_id), "order_number": order.order_number},
        )
        return order.to_dto()

    # -------------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------------

    def _validate_receipt(
        self,
        order: PurchaseOrderModel,
        lines: Sequence[ReceiptLine],
    ) -> list[dict[str, str]]:
        by_id = {line.id: line for line in order.lines}
        failures: list[dict[str, str]] = []
        seen: set[UUID] = set()

        if not lines:
            failures.append({
                "line_id": "",
                "code": "NO_LINES",
                "reason": "a receipt needs at least one line",
            })

        for receipt in lines:
            line_key = str(receipt.line_id)
            if receipt.line_id in seen:
                failures.append({
                    "line_id": line_key,
                    "code": "DUPLICATE_LINE",
                    "reason": "line appears more than once in the receipt",
                })
                continue
            seen.add(receipt.line_id)

            line = by_id.get(receipt.line_id)
            if line is None:
                failures.append({
                    "line_id": line_key,
                    "code": OrderLineNotFoundError.code,
                    "reason": "line does not belong to this order",
                })
                continue

            quantity = receipt.quantity
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                failures.append({
                    "line_id": line_key,
                    "code": "INVALID_QUANTITY",
                    "reason": f"quantity must be a positive integer, got {quantity!r}",
                })
            elif quantity > line.remaining:
                failures.append({
                    "line_id": line_key,
                    "code": OverReceiptError.code,
                    "reason": str(OverReceiptError(line_key, line.remaining, quantity)),
                })
        return failures

    def receive(
        self,
        order_id: UUID,
        lines: Sequence[ReceiptLine],
        actor_id: UUID,
    ) -> ReceiptOutcome:
        """
        Receive goods against a confirmed order.

        Each line becomes a PURCHASE_IN movement referencing the order
        number.  Open shortage alerts of the received products are
        auto-resolved.  The order moves to RECEIVED when every line is
        complete, else PARTIALLY_RECEIVED.

        Raises:
            PurchaseOrderNotFoundError, OrderNotReceivableError,
            ReceivingValidationError (nothing was received).
        """
        order = self._locked_order(order_id)
        if OrderState(order.state) not in OPEN_ORDER_STATES:
            raise OrderNotReceivableError(order_id, order.state)

        failures = self._validate_receipt(order, lines)
        if failures:
            logger.warning(
                "purchase_order_receipt_rejected",
                extra={
                    "order_id": str(order_id),
                    "failed_lines": len(failures),
                },
            )
            raise ReceivingValidationError(str(order_id), failures)

        by_id = {line.id: line for line in order.lines}
        movements = []
        for receipt in lines:
            line = by_id[receipt.line_id]
            movements.append(self._ledger.append(
                MovementDraft(
                    product_id=line.product_id,
                    kind=MovementKind.PURCHASE_IN,
                    quantity=receipt.quantity,
                    unit_cost=line.unit_cost,
                    lot_number=receipt.lot_number,
                    expiry_date=receipt.expiry_date,
                    supplier_id=order.supplier_id,
                    reason=f"Receipt of order {order.order_number}",
                    reference=order.order_number,
                ),
                actor_id,
            ))
            line.quantity_received += receipt.quantity
            line.updated_by_id = actor_id

        guards = (
            (ALL_LINES_RECEIVED.name,)
            if all(line.remaining == 0 for line in order.lines)
            else ()
        )
        transition = PURCHASE_ORDER_WORKFLOW.transition_for(order.state, "receive", guards)
        if transition is None:
            raise InvalidOrderTransitionError(order_id, order.state, "receive")
        order.state = transition.to_state
        if transition.to_state == OrderState.RECEIVED.value:
            order.received_at = self.clock.now()
        order.updated_by_id = actor_id
        self.session.flush()

        resolved: list[UUID] = []
        for product_id in sorted({by_id[r.line_id].product_id for r in lines}, key=str):
            resolved.extend(
                alert.alert_id
                for alert in self._alert_engine.auto_resolve_for_product(
                    product_id,
                    actor_id,
                    note=f"Stock received on order {order.order_number}",
                )
            )

        logger.info(
            "purchase_order_received",
            extra={
                "order_id": str(order_id),
                "order_number": order.order_number,
                "state": order.state,
                "lines_received": len(lines),
                "alerts_resolved": len(resolved),
            },
        )
        return ReceiptOutcome(
            order=order.to_dto(),
            movements=tuple(movements),
            resolved_alert_ids=tuple(resolved),
        )
