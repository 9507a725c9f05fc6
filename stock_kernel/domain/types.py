"""
Closed value sets for the stock kernel (``stock_kernel.domain.types``).

Every enum is a ``(str, Enum)`` so values persist verbatim in ``String(50)``
columns and serialize without adapters.  Movement kinds carry their stock
direction and category here, so the ledger never branches on kind names.
"""

from __future__ import annotations

from enum import Enum
from uuid import UUID


class MovementDirection(str, Enum):
    IN = "in"
    OUT = "out"


class MovementCategory(str, Enum):
    PURCHASE = "purchase"
    SALE = "sale"
    RETURN = "return"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    PRODUCTION = "production"
    INITIAL = "initial"
    LOSS = "loss"
    CONSUMPTION = "consumption"


class MovementKind(str, Enum):
    """Stock-affecting event kinds.  Each kind has a fixed direction."""

    PURCHASE_IN = "purchase_in"
    RETURN_IN = "return_in"
    ADJUSTMENT_IN = "adjustment_in"
    TRANSFER_IN = "transfer_in"
    PRODUCTION_IN = "production_in"
    OPENING_BALANCE = "opening_balance"
    ADJUSTMENT_POSITIVE = "adjustment_positive"
    SALE_OUT = "sale_out"
    RETURN_OUT = "return_out"
    ADJUSTMENT_OUT = "adjustment_out"
    TRANSFER_OUT = "transfer_out"
    SHRINKAGE_OUT = "shrinkage_out"
    EXPIRY_OUT = "expiry_out"
    CONSUMPTION_OUT = "consumption_out"
    ADJUSTMENT_NEGATIVE = "adjustment_negative"

    @property
    def direction(self) -> MovementDirection:
        return _KIND_TRAITS[self][0]

    @property
    def category(self) -> MovementCategory:
        return _KIND_TRAITS[self][1]

    @property
    def is_inbound(self) -> bool:
        return self.direction == MovementDirection.IN

    @property
    def is_sale(self) -> bool:
        return self.category == MovementCategory.SALE

    @property
    def requires_supplier(self) -> bool:
        return self.category == MovementCategory.PURCHASE

    def signed(self, quantity: int) -> int:
        """Quantity with the sign this kind applies to the balance."""
        return quantity if self.is_inbound else -quantity


_KIND_TRAITS: dict[MovementKind, tuple[MovementDirection, MovementCategory]] = {
    MovementKind.PURCHASE_IN: (MovementDirection.IN, MovementCategory.PURCHASE),
    MovementKind.RETURN_IN: (MovementDirection.IN, MovementCategory.RETURN),
    MovementKind.ADJUSTMENT_IN: (MovementDirection.IN, MovementCategory.ADJUSTMENT),
    MovementKind.TRANSFER_IN: (MovementDirection.IN, MovementCategory.TRANSFER),
    MovementKind.PRODUCTION_IN: (MovementDirection.IN, MovementCategory.PRODUCTION),
    MovementKind.OPENING_BALANCE: (MovementDirection.IN, MovementCategory.INITIAL),
    MovementKind.ADJUSTMENT_POSITIVE: (MovementDirection.IN, MovementCategory.ADJUSTMENT),
    MovementKind.SALE_OUT: (MovementDirection.OUT, MovementCategory.SALE),
    MovementKind.RETURN_OUT: (MovementDirection.OUT, MovementCategory.RETURN),
    MovementKind.ADJUSTMENT_OUT: (MovementDirection.OUT, MovementCategory.ADJUSTMENT),
    MovementKind.TRANSFER_OUT: (MovementDirection.OUT, MovementCategory.TRANSFER),
    MovementKind.SHRINKAGE_OUT: (MovementDirection.OUT, MovementCategory.LOSS),
    MovementKind.EXPIRY_OUT: (MovementDirection.OUT, MovementCategory.LOSS),
    MovementKind.CONSUMPTION_OUT: (MovementDirection.OUT, MovementCategory.CONSUMPTION),
    MovementKind.ADJUSTMENT_NEGATIVE: (MovementDirection.OUT, MovementCategory.ADJUSTMENT),
}

INBOUND_KINDS: frozenset[MovementKind] = frozenset(k for k in MovementKind if k.is_inbound)
OUTBOUND_KINDS: frozenset[MovementKind] = frozenset(k for k in MovementKind if not k.is_inbound)
SALE_KINDS: frozenset[MovementKind] = frozenset(k for k in MovementKind if k.is_sale)


class InventoryState(str, Enum):
    NORMAL = "normal"
    LOW = "low"
    CRITICAL = "critical"
    EXCESS = "excess"
    OBSOLETE = "obsolete"
    BLOCKED = "blocked"


class AlertType(str, Enum):
    LOW_STOCK = "low_stock"
    REORDER_POINT = "reorder_point"
    CRITICAL_STOCK = "critical_stock"
    OVERSTOCK = "overstock"
    OBSOLETE = "obsolete"
    EXPIRY_SOON = "expiry_soon"
    EXPIRED = "expired"
    ANOMALOUS_DEMAND = "anomalous_demand"
    HIGH_COST = "high_cost"
    HIGH_SHRINKAGE = "high_shrinkage"
    SUPPLIER_DELAY = "supplier_delay"


SHORTAGE_ALERT_TYPES: frozenset[AlertType] = frozenset({
    AlertType.CRITICAL_STOCK,
    AlertType.LOW_STOCK,
    AlertType.REORDER_POINT,
})


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertState(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    IGNORED = "ignored"
    ESCALATED = "escalated"

    @property
    def is_terminal(self) -> bool:
        return self in (AlertState.RESOLVED, AlertState.IGNORED)


OPEN_ALERT_STATES: tuple[AlertState, ...] = (
    AlertState.PENDING,
    AlertState.IN_PROGRESS,
    AlertState.ESCALATED,
)


class AlertAction(str, Enum):
    CLAIM = "claim"
    RESOLVE = "resolve"
    ESCALATE = "escalate"
    IGNORE = "ignore"
    AUTO_RESOLVE = "auto_resolve"


class OrderState(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderState.RECEIVED, OrderState.CANCELLED)


OPEN_ORDER_STATES: tuple[OrderState, ...] = (
    OrderState.CONFIRMED,
    OrderState.PARTIALLY_RECEIVED,
)


class OrderPolicy(str, Enum):
    """How the ordered quantity is derived from an optimization result."""

    EOQ = "eoq"
    SHORTFALL = "shortfall"


# Actor recorded on writes the engine makes on its own behalf (event
# subscribers, batch jobs, auto-resolution).
SYSTEM_ACTOR_ID = UUID(int=0)
