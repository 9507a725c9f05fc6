"""
Engine settings schema.

Frozen dataclasses describing every tunable of the replenishment engine.
The loader parses YAML into these types; services receive plain values
from them and never read configuration themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerSettings:
    """Backorder mode: allow out-movements to drive the balance negative."""

    allow_negative_balance: bool = False


@dataclass(frozen=True)
class InventorySettings:
    obsolete_after_days: int = 30


@dataclass(frozen=True)
class DemandSettings:
    """Windows (in days) for the post-commit listener and bulk normalization."""

    listener_window_days: int = 1
    bulk_window_days: int = 30


@dataclass(frozen=True)
class OptimizationSettings:
    service_level_factor: Decimal = Decimal("1.65")  # ~95% cycle service level
    demand_window_days: int = 90
    default_holding_cost_rate: Decimal = Decimal("0.25")


@dataclass(frozen=True)
class AlertSettings:
    expiry_warning_days: int = 30
    retention_days: int = 90


@dataclass(frozen=True)
class BatchSettings:
    worker_pool_size: int = 4
    tick_interval_seconds: int = 60


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    database_url: str = "sqlite:///stock_engine.db"
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    inventory: InventorySettings = field(default_factory=InventorySettings)
    demand: DemandSettings = field(default_factory=DemandSettings)
    optimization: OptimizationSettings = field(default_factory=OptimizationSettings)
    alerts: AlertSettings = field(default_factory=AlertSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)
