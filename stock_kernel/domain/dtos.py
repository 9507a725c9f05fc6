"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable data structures that cross the service boundary: movement
    drafts (input) and records (output), snapshot views, demand records,
    optimization parameters/outcomes, alert views and filters, purchase
    order views and receipt lines.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ORM models convert themselves to
    these via ``to_dto()``; callers above the service layer never hold ORM
    instances.

Data flow:
    MovementDraft -> MovementRecord -> SnapshotView -> OptimizationOutcome
    -> AlertView -> PurchaseOrderView -> ReceiptLine -> MovementRecord
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from stock_kernel.domain.events import MovementCommitted
from stock_kernel.domain.types import (
    AlertSeverity,
    AlertState,
    AlertType,
    InventoryState,
    MovementKind,
    OrderState,
)


# =============================================================================
# Ledger
# =============================================================================


@dataclass(frozen=True)
class MovementDraft:
    """A movement as submitted, before validation and balance assignment."""
    product_id: UUID
    kind: MovementKind
    quantity: int
    occurred_at: datetime | None = None
    unit_cost: Decimal | None = None
    lot_number: str | None = None
    expiry_date: date | None = None
    supplier_id: UUID | None = None
    reason: str = ""
    reference: str | None = None


@dataclass(frozen=True)
class PendingDelivery:
    """A committed event a subscriber has not yet processed."""
    delivery_id: UUID
    subscriber: str
    event: MovementCommitted
    failure_count: int
    error_type: str
    error_message: str
    first_failed_at: datetime
    last_failed_at: datetime


@dataclass(frozen=True)
class MovementRecord:
    """A movement as stored in the ledger."""
    movement_id: UUID
    product_id: UUID
    sequence: int
    occurred_at: datetime
    kind: MovementKind
    quantity: int
    running_balance: int
    actor_id: UUID
    unit_cost: Decimal | None = None
    lot_number: str | None = None
    expiry_date: date | None = None
    supplier_id: UUID | None = None
    reason: str = ""
    reference: str | None = None
    voided: bool = False
    voided_at: datetime | None = None
    voided_by_id: UUID | None = None
    void_reason: str | None = None

    @property
    def signed_quantity(self) -> int:
        return self.kind.signed(self.quantity)


# =============================================================================
# Inventory state
# =============================================================================


@dataclass(frozen=True)
class SnapshotView:
    """Current derived stock levels and state for one product."""
    product_id: UUID
    available: int
    reserved: int
    in_transit: int
    minimum: int
    maximum: int | None
    reorder_point: int
    state: InventoryState
    needs_reorder: bool
    below_minimum: bool
    location: str | None = None
    blocked: bool = False
    block_reason: str | None = None
    last_movement_at: datetime | None = None
    last_recomputed_at: datetime | None = None
    days_since_last_sale: int | None = None

    @property
    def total(self) -> int:
        return self.available + self.reserved + self.in_transit


# =============================================================================
# Demand
# =============================================================================


@dataclass(frozen=True)
class DemandRecordView:
    product_id: UUID
    demand_date: date
    quantity: int
    period: str


@dataclass(frozen=True)
class NormalizationFailure:
    product_id: UUID
    error_code: str
    message: str


@dataclass(frozen=True)
class NormalizationSummary:
    """Outcome of a bulk normalization run.  Failures never abort the run."""
    window_days: int
    products_processed: int
    products_succeeded: int
    records_written: int
    failures: tuple[NormalizationFailure, ...] = ()

    @property
    def products_failed(self) -> int:
        return len(self.failures)


# =============================================================================
# Optimization
# =============================================================================


@dataclass(frozen=True)
class OptimizationParameters:
    """
    Inputs to an optimization run.

    Any field left as None is derived: annual demand from recent demand
    records, costs and lead time from the catalog, the service-level factor
    and demand window from configuration.
    """
    annual_demand: Decimal | None = None
    holding_cost: Decimal | None = None
    order_cost: Decimal | None = None
    lead_time_days: int | None = None
    unit_cost: Decimal | None = None
    safety_stock: Decimal | None = None
    service_level_factor: Decimal | None = None
    demand_window_days: int | None = None


@dataclass(frozen=True)
class OptimizationOutcome:
    """A persisted optimization result."""
    result_id: UUID
    product_id: UUID
    computed_at: datetime
    annual_demand: Decimal
    holding_cost: Decimal
    order_cost: Decimal
    lead_time_days: int
    unit_cost: Decimal
    service_level_factor: Decimal
    demand_window_days: int
    demand_std_dev: Decimal
    eoq: Decimal
    reorder_point: Decimal
    suggested_safety_stock: Decimal
    safety_stock_used: Decimal
    total_annual_cost: Decimal
    orders_per_year: Decimal
    average_daily_demand: Decimal
    days_between_orders: Decimal | None = None
    supplied_safety_stock: Decimal | None = None


# =============================================================================
# Alerts
# =============================================================================


@dataclass(frozen=True)
class AlertView:
    alert_id: UUID
    product_id: UUID
    alert_type: AlertType
    severity: AlertSeverity
    state: AlertState
    message: str
    triggered_at: datetime
    assignee_id: UUID | None = None
    resolution_note: str | None = None
    resolved_at: datetime | None = None
    closed_by_id: UUID | None = None


@dataclass(frozen=True)
class AlertFilter:
    """Criteria for listing alerts.  Empty tuples mean 'any'."""
    product_id: UUID | None = None
    states: tuple[AlertState, ...] = ()
    types: tuple[AlertType, ...] = ()
    severities: tuple[AlertSeverity, ...] = ()
    open_only: bool = False
    limit: int = 100
    offset: int = 0

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError("limit must be positive")
        if self.offset < 0:
            raise ValueError("offset cannot be negative")


@dataclass(frozen=True)
class AlertStatistics:
    total: int
    open: int
    by_state: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)
    by_severity: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AlertTransitionFailure:
    alert_id: UUID
    error_code: str
    message: str


@dataclass(frozen=True)
class BulkTransitionResult:
    transitioned: tuple[AlertView, ...] = ()
    failures: tuple[AlertTransitionFailure, ...] = ()


# =============================================================================
# Purchase orders
# =============================================================================


@dataclass(frozen=True)
class OrderLineView:
    line_id: UUID
    product_id: UUID
    quantity_ordered: int
    quantity_received: int
    unit_cost: Decimal

    @property
    def remaining(self) -> int:
        return self.quantity_ordered - self.quantity_received


@dataclass(frozen=True)
class PurchaseOrderView:
    order_id: UUID
    order_number: str
    supplier_id: UUID
    state: OrderState
    requested_delivery_date: date | None
    lines: tuple[OrderLineView, ...]
    optimization_result_id: UUID | None = None
    alert_id: UUID | None = None
    notes: str | None = None
    confirmed_at: datetime | None = None
    received_at: datetime | None = None
    cancelled_at: datetime | None = None

    @property
    def total_cost(self) -> Decimal:
        return sum(
            (line.unit_cost * line.quantity_ordered for line in self.lines),
            Decimal("0"),
        )


@dataclass(frozen=True)
class ReceiptLine:
    """Goods received against one order line."""
    line_id: UUID
    quantity: int
    lot_number: str | None = None
    expiry_date: date | None = None


@dataclass(frozen=True)
class ReceiptOutcome:
    order: PurchaseOrderView
    movements: tuple[MovementRecord, ...]
    resolved_alert_ids: tuple[UUID, ...] = ()
