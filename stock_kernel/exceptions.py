"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (API adapters, batch jobs, operators' tooling) must react to errors
precisely. Every error raised by the kernel:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        engine.append_movement(draft, actor_id)
    except Exception as e:
        if "negative" in str(e):  # FRAGILE - message might change
            offer_backorder()

Example - RIGHT way:
    try:
        engine.append_movement(draft, actor_id)
    except InsufficientStockError as e:
        offer_backorder(e.product_id, e.available, e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from StockKernelError:

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidMovementError
    |   |   +-- InsufficientStockError
    |   +-- InvalidParametersError
    |   +-- InvalidThresholdError
    |   +-- InvalidOrderQuantityError
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- SupplierNotFoundError
    |   +-- MovementNotFoundError
    |   +-- SnapshotNotFoundError
    |   +-- OptimizationResultNotFoundError
    |   +-- AlertNotFoundError
    |   +-- PurchaseOrderNotFoundError
    |   +-- OrderLineNotFoundError
    |
    +-- LedgerError
    |   +-- AlreadyVoidedError
    |
    +-- AlertError
    |   +-- AlertAlreadyClosedError
    |   +-- InvalidAlertTransitionError
    |
    +-- PurchaseOrderError
    |   +-- NoSupplierAssignedError
    |   +-- OrderAlreadyConfirmedError
    |   +-- OrderNotReceivableError
    |   +-- OrderClosedError
    |   +-- InvalidOrderTransitionError
    |   +-- OverReceiptError
    |   +-- ReceivingValidationError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- BatchError
        +-- BatchAbortedError
        +-- TaskNotFoundError
        +-- WorkerPoolShutdownError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Validation      | INVALID_MOVEMENT              | Bad quantity, missing supplier, ...
                | INSUFFICIENT_STOCK            | Out-movement would go negative
                | INVALID_PARAMETERS            | Optimization / window inputs invalid
                | INVALID_THRESHOLD             | Negative or inverted thresholds
                | INVALID_ORDER_QUANTITY        | Order quantity would be <= 0
----------------|-------------------------------|---------------------------------------
Not found       | PRODUCT_NOT_FOUND             | Catalog has no such product
                | SUPPLIER_NOT_FOUND            | Catalog has no such supplier
                | MOVEMENT_NOT_FOUND            | Movement ID doesn't exist
                | SNAPSHOT_NOT_FOUND            | Product never touched the ledger
                | OPTIMIZATION_RESULT_NOT_FOUND | Result ID doesn't exist
                | ALERT_NOT_FOUND               | Alert ID doesn't exist
                | PURCHASE_ORDER_NOT_FOUND      | Order ID doesn't exist
                | ORDER_LINE_NOT_FOUND          | Line is not part of the order
----------------|-------------------------------|---------------------------------------
Ledger          | ALREADY_VOIDED                | Second void of one movement
----------------|-------------------------------|---------------------------------------
Alert           | ALERT_ALREADY_CLOSED          | Mutating a RESOLVED/IGNORED alert
                | INVALID_ALERT_TRANSITION      | Action not allowed from state
----------------|-------------------------------|---------------------------------------
Purchase order  | NO_SUPPLIER_ASSIGNED          | Product has no supplier
                | ORDER_ALREADY_CONFIRMED       | Confirming a non-DRAFT order
                | ORDER_NOT_RECEIVABLE          | Receiving DRAFT/closed order
                | ORDER_CLOSED                  | Mutating RECEIVED/CANCELLED order
                | INVALID_ORDER_TRANSITION      | Action not allowed from state
                | OVER_RECEIPT                  | Received > remaining on a line
                | RECEIVING_VALIDATION_FAILED   | One or more receipt lines invalid
----------------|-------------------------------|---------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Editing/deleting an immutable row
----------------|-------------------------------|---------------------------------------
Batch           | BATCH_ABORTED                 | Infrastructure failure mid-batch
                | TASK_NOT_FOUND                | Unregistered task type
                | WORKER_POOL_SHUTDOWN          | Submitting to a drained pool

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Inherit from Exception (not ValueError): domain errors are catchable as a
   group without mixing in programming errors.

2. ``code`` is a class attribute: available without instantiation for API
   documentation and static mapping tables.

3. All context is stored as attributes so it survives logging and
   serialization (the JSON log formatter emits them as ``exc_*`` fields).

===============================================================================
"""

from typing import Any


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation errors


class ValidationError(StockKernelError):
    """Base exception for input rejected before any state change."""

    code: str = "VALIDATION_ERROR"


class InvalidMovementError(ValidationError):
    """Movement failed validation (quantity, kind, supplier, ...)."""

    code: str = "INVALID_MOVEMENT"

    def __init__(self, reason: str, product_id: str | None = None):
        self.reason = reason
        self.product_id = product_id
        super().__init__(f"Invalid movement: {reason}")


class InsufficientStockError(InvalidMovementError):
    """An out-movement (or void of an in-movement) would drive stock negative."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f"insufficient stock for product {product_id}: "
            f"available {available}, requested {requested}",
            product_id=product_id,
        )


class InvalidParametersError(ValidationError):
    """Computation parameters are out of range or missing."""

    code: str = "INVALID_PARAMETERS"

    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        self.reason = reason
        super().__init__(f"Invalid parameter '{parameter}': {reason}")


class InvalidThresholdError(ValidationError):
    """Snapshot threshold configuration is inconsistent."""

    code: str = "INVALID_THRESHOLD"

    def __init__(self, product_id: str, reason: str):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Invalid thresholds for product {product_id}: {reason}")


class InvalidOrderQuantityError(ValidationError):
    """The computed or requested order quantity is not positive."""

    code: str = "INVALID_ORDER_QUANTITY"

    def __init__(self, product_id: str, quantity: int):
        self.product_id = product_id
        self.quantity = quantity
        super().__init__(
            f"Order quantity for product {product_id} must be positive, got {quantity}"
        )


# Not-found errors


class NotFoundError(StockKernelError):
    """Base exception for missing entities. Carries the requested identifier."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: Any):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity_type: str = "Product"


class SupplierNotFoundError(NotFoundError):
    code: str = "SUPPLIER_NOT_FOUND"
    entity_type: str = "Supplier"


class MovementNotFoundError(NotFoundError):
    code: str = "MOVEMENT_NOT_FOUND"
    entity_type: str = "Movement"


class SnapshotNotFoundError(NotFoundError):
    code: str = "SNAPSHOT_NOT_FOUND"
    entity_type: str = "InventorySnapshot"


class OptimizationResultNotFoundError(NotFoundError):
    code: str = "OPTIMIZATION_RESULT_NOT_FOUND"
    entity_type: str = "OptimizationResult"


class AlertNotFoundError(NotFoundError):
    code: str = "ALERT_NOT_FOUND"
    entity_type: str = "Alert"


class PurchaseOrderNotFoundError(NotFoundError):
    code: str = "PURCHASE_ORDER_NOT_FOUND"
    entity_type: str = "PurchaseOrder"


class OrderLineNotFoundError(NotFoundError):
    code: str = "ORDER_LINE_NOT_FOUND"
    entity_type: str = "PurchaseOrderLine"


# Ledger errors


class LedgerError(StockKernelError):
    """Base exception for ledger invariant violations."""

    code: str = "LEDGER_ERROR"


class AlreadyVoidedError(LedgerError):
    """Movement has already been voided; a movement is void-able once."""

    code: str = "ALREADY_VOIDED"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement {movement_id} is already voided")


# Alert errors


class AlertError(StockKernelError):
    """Base exception for alert lifecycle errors."""

    code: str = "ALERT_ERROR"


class AlertAlreadyClosedError(AlertError):
    """Alert is RESOLVED or IGNORED and cannot change any further."""

    code: str = "ALERT_ALREADY_CLOSED"

    def __init__(self, alert_id: str, state: str):
        self.alert_id = alert_id
        self.state = state
        super().__init__(f"Alert {alert_id} is closed ({state})")


class InvalidAlertTransitionError(AlertError):
    """The requested action is not allowed from the alert's current state."""

    code: str = "INVALID_ALERT_TRANSITION"

    def __init__(self, alert_id: str, from_state: str, action: str):
        self.alert_id = alert_id
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"Action '{action}' is not allowed for alert {alert_id} in state {from_state}"
        )


# Purchase order errors


class PurchaseOrderError(StockKernelError):
    """Base exception for purchase order workflow errors."""

    code: str = "PURCHASE_ORDER_ERROR"


class NoSupplierAssignedError(PurchaseOrderError):
    """The product has no supplier, so no order can be generated."""

    code: str = "NO_SUPPLIER_ASSIGNED"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} has no supplier assigned")


class OrderAlreadyConfirmedError(PurchaseOrderError):
    """Only DRAFT orders can be confirmed."""

    code: str = "ORDER_ALREADY_CONFIRMED"

    def __init__(self, order_id: str, state: str):
        self.order_id = order_id
        self.state = state
        super().__init__(f"Purchase order {order_id} is not a draft (state {state})")


class OrderNotReceivableError(PurchaseOrderError):
    """Only CONFIRMED or PARTIALLY_RECEIVED orders can receive goods."""

    code: str = "ORDER_NOT_RECEIVABLE"

    def __init__(self, order_id: str, state: str):
        self.order_id = order_id
        self.state = state
        super().__init__(f"Purchase order {order_id} cannot be received in state {state}")


class OrderClosedError(PurchaseOrderError):
    """Order is RECEIVED or CANCELLED."""

    code: str = "ORDER_CLOSED"

    def __init__(self, order_id: str, state: str):
        self.order_id = order_id
        self.state = state
        super().__init__(f"Purchase order {order_id} is closed ({state})")


class InvalidOrderTransitionError(PurchaseOrderError):
    """The requested action is not allowed from the order's current state."""

    code: str = "INVALID_ORDER_TRANSITION"

    def __init__(self, order_id: str, from_state: str, action: str):
        self.order_id = order_id
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"Action '{action}' is not allowed for purchase order {order_id} "
            f"in state {from_state}"
        )


class OverReceiptError(PurchaseOrderError):
    """Received quantity exceeds what remains open on the line."""

    code: str = "OVER_RECEIPT"

    def __init__(self, line_id: str, remaining: int, received: int):
        self.line_id = line_id
        self.remaining = remaining
        self.received = received
        super().__init__(
            f"Line {line_id}: received {received} exceeds remaining {remaining}"
        )


class ReceivingValidationError(PurchaseOrderError):
    """
    One or more receipt lines failed validation; nothing was received.

    ``failures`` holds one dict per failed line with ``line_id``, ``code``
    and ``reason``.
    """

    code: str = "RECEIVING_VALIDATION_FAILED"

    def __init__(self, order_id: str, failures: list[dict[str, str]]):
        self.order_id = order_id
        self.failures = failures
        super().__init__(
            f"Receipt for purchase order {order_id} rejected: "
            f"{len(failures)} invalid line(s)"
        )


# Immutability errors


class ImmutabilityError(StockKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        reason: str,
        field: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        self.field = field
        detail = f" (field: {field})" if field is not None else ""
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}{detail}"
        )


# Batch errors


class BatchError(StockKernelError):
    """Base exception for background batch processing."""

    code: str = "BATCH_ERROR"


class BatchAbortedError(BatchError):
    """An infrastructure failure stopped the batch; remaining items were not run."""

    code: str = "BATCH_ABORTED"

    def __init__(self, task_type: str, item_key: str, reason: str):
        self.task_type = task_type
        self.item_key = item_key
        self.reason = reason
        super().__init__(
            f"Batch '{task_type}' aborted at item {item_key}: {reason}"
        )


class TaskNotFoundError(BatchError):
    """No task registered under the given type."""

    code: str = "TASK_NOT_FOUND"

    def __init__(self, task_type: str):
        self.task_type = task_type
        super().__init__(f"Batch task not registered: {task_type}")


class WorkerPoolShutdownError(BatchError):
    """The worker pool has been shut down and accepts no more work."""

    code: str = "WORKER_POOL_SHUTDOWN"

    def __init__(self, pool_name: str):
        self.pool_name = pool_name
        super().__init__(f"Worker pool '{pool_name}' is shut down")
