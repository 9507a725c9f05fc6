"""
Replenishment Pure Functions (``stock_kernel.domain.optimization``).

Responsibility
--------------
Stateless EOQ, safety stock, reorder point (ROP) and total-cost formulas,
plus the demand statistics that feed them.  The optimization service loads
inputs, calls ``compute_replenishment_plan`` and persists the result.

Architecture
------------
Layer: **Kernel domain** -- pure functions.  No I/O, no session, no clock.

Invariants
----------
- All numeric inputs and outputs use ``Decimal`` (never ``float``).
- Intermediate values keep full precision; only the plan's outputs are
  quantized to two places (ROUND_HALF_UP).
- Each function validates its own preconditions and raises
  ``InvalidParametersError`` naming the offending parameter.

Formulas
--------
- ``EOQ = sqrt(2 * D * S / H)``
- ``d = D / 365``
- ``SS = z * sigma * sqrt(L)``
- ``ROP = d * L + SS``
- ``orders_per_year = D / EOQ``; ``days_between_orders = 365 / orders_per_year``
- ``total_annual_cost = (D / EOQ) * S + (EOQ / 2) * H``
"""

from __future__ import annotations

import statistics
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from stock_kernel.exceptions import InvalidParametersError

DAYS_PER_YEAR = Decimal("365")
DEFAULT_SERVICE_LEVEL_FACTOR = Decimal("1.65")  # ~95% cycle service level
_TWO_PLACES = Decimal("0.01")
_ZERO = Decimal("0")


def _q(value: Decimal) -> Decimal:
    return value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def _require_non_negative(name: str, value: Decimal | int) -> None:
    if value < 0:
        raise InvalidParametersError(name, f"must be non-negative, got {value}")


def calculate_eoq(
    annual_demand: Decimal,
    order_cost: Decimal,
    holding_cost: Decimal,
) -> Decimal:
    """
    Calculate Economic Order Quantity at full precision.

    Preconditions:
        - ``annual_demand >= 0``, ``order_cost >= 0``, ``holding_cost > 0``.

    Returns:
        EOQ in units.  Zero demand or zero ordering cost yields zero.

    Raises:
        InvalidParametersError: If any precondition fails.
    """
    if holding_cost <= 0:
        raise InvalidParametersError(
            "holding_cost", f"must be positive, got {holding_cost}"
        )
    _require_non_negative("order_cost", order_cost)
    _require_non_negative("annual_demand", annual_demand)

    return (Decimal("2") * annual_demand * order_cost / holding_cost).sqrt()


def calculate_safety_stock(
    service_level_factor: Decimal,
    demand_std_dev: Decimal,
    lead_time_days: int,
) -> Decimal:
    """
    Suggested safety stock: ``z * sigma * sqrt(L)``.

    Raises:
        InvalidParametersError: On negative inputs.
    """
    _require_non_negative("service_level_factor", service_level_factor)
    _require_non_negative("demand_std_dev", demand_std_dev)
    _require_non_negative("lead_time_days", lead_time_days)

    return service_level_factor * demand_std_dev * Decimal(lead_time_days).sqrt()


def calculate_reorder_point(
    avg_daily_demand: Decimal,
    lead_time_days: int,
    safety_stock: Decimal,
) -> Decimal:
    """
    Reorder point: ``(avg_daily_demand * lead_time_days) + safety_stock``.

    Postconditions:
        - Result >= ``avg_daily_demand * lead_time_days``.

    Raises:
        InvalidParametersError: On negative inputs.
    """
    _require_non_negative("avg_daily_demand", avg_daily_demand)
    _require_non_negative("lead_time_days", lead_time_days)
    _require_non_negative("safety_stock", safety_stock)

    return (avg_daily_demand * lead_time_days) + safety_stock


def calculate_total_annual_cost(
    annual_demand: Decimal,
    order_cost: Decimal,
    holding_cost: Decimal,
    eoq: Decimal,
) -> Decimal:
    """Ordering plus holding cost per year at order size ``eoq``.  Zero when eoq is zero."""
    if eoq <= 0:
        return _ZERO
    return (annual_demand / eoq) * order_cost + (eoq / Decimal("2")) * holding_cost


def daily_demand_series(
    quantities_by_day: dict,
    days: Sequence,
) -> list[Decimal]:
    """
    Expand sparse per-date totals to one value per day in ``days``.

    Days with no recorded demand count as zero.
    """
    return [Decimal(quantities_by_day.get(day, 0)) for day in days]


def demand_std_dev(samples: Sequence[Decimal]) -> Decimal:
    """Population standard deviation of daily demand (zero for < 2 samples)."""
    if len(samples) < 2:
        return _ZERO
    return statistics.pstdev([Decimal(s) for s in samples])


def annualize_demand(total_quantity: int | Decimal, window_days: int) -> Decimal:
    """Scale a window total to a 365-day year."""
    if window_days <= 0:
        raise InvalidParametersError("demand_window_days", "must be positive")
    return Decimal(total_quantity) / Decimal(window_days) * DAYS_PER_YEAR


@dataclass(frozen=True)
class ReplenishmentPlan:
    """Quantized outputs of one optimization run."""
    eoq: Decimal
    average_daily_demand: Decimal
    suggested_safety_stock: Decimal
    safety_stock_used: Decimal
    reorder_point: Decimal
    orders_per_year: Decimal
    days_between_orders: Decimal | None
    total_annual_cost: Decimal


def compute_replenishment_plan(
    annual_demand: Decimal,
    order_cost: Decimal,
    holding_cost: Decimal,
    lead_time_days: int,
    demand_std_dev_value: Decimal,
    service_level_factor: Decimal = DEFAULT_SERVICE_LEVEL_FACTOR,
    safety_stock: Decimal | None = None,
) -> ReplenishmentPlan:
    """
    Run the full formula chain.

    A caller-supplied ``safety_stock`` takes precedence over the suggestion;
    the suggestion is still computed and reported.

    Raises:
        InvalidParametersError: If any input is out of range.
    """
    if safety_stock is not None:
        _require_non_negative("safety_stock", safety_stock)

    eoq = calculate_eoq(annual_demand, order_cost, holding_cost)
    daily = annual_demand / DAYS_PER_YEAR
    suggested = calculate_safety_stock(
        service_level_factor, demand_std_dev_value, lead_time_days
    )
    used = safety_stock if safety_stock is not None else suggested
    rop = calculate_reorder_point(daily, lead_time_days, used)

    if eoq > 0:
        orders_per_year = annual_demand / eoq
    else:
        orders_per_year = _ZERO
    days_between = DAYS_PER_YEAR / orders_per_year if orders_per_year > 0 else None

    total_cost = calculate_total_annual_cost(annual_demand, order_cost, holding_cost, eoq)

    return ReplenishmentPlan(
        eoq=_q(eoq),
        average_daily_demand=_q(daily),
        suggested_safety_stock=_q(suggested),
        safety_stock_used=_q(used),
        reorder_point=_q(rop),
        orders_per_year=_q(orders_per_year),
        days_between_orders=_q(days_between) if days_between is not None else None,
        total_annual_cost=_q(total_cost),
    )
