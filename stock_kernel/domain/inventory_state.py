"""
Inventory state derivation (pure).

The snapshot's state and flags are pure functions of its numeric fields.
The aggregator calls ``derive_inventory_state`` after every recompute and
threshold edit; nothing else writes state.

Rule table, first match wins:

    blocked                                   -> BLOCKED
    available <= 0                            -> CRITICAL
    available < minimum                       -> LOW
    maximum set and available >= maximum      -> EXCESS
    days_since_last_sale > obsolete_after     -> OBSOLETE
    otherwise                                 -> NORMAL

CRITICAL is checked before OBSOLETE so a near-dead item that has run out
still reports as critical.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from stock_kernel.domain.types import InventoryState

DEFAULT_OBSOLETE_AFTER_DAYS = 30


@dataclass(frozen=True)
class DerivedState:
    state: InventoryState
    needs_reorder: bool
    below_minimum: bool


def derive_inventory_state(
    available: int,
    minimum: int,
    maximum: int | None,
    reorder_point: int,
    days_since_last_sale: int | None,
    blocked: bool = False,
    obsolete_after_days: int = DEFAULT_OBSOLETE_AFTER_DAYS,
) -> DerivedState:
    """Apply the rule table to a product's numeric fields."""
    below_minimum = available < minimum
    needs_reorder = available <= reorder_point

    if blocked:
        state = InventoryState.BLOCKED
    elif available <= 0:
        state = InventoryState.CRITICAL
    elif below_minimum:
        state = InventoryState.LOW
    elif maximum is not None and available >= maximum:
        state = InventoryState.EXCESS
    elif days_since_last_sale is not None and days_since_last_sale > obsolete_after_days:
        state = InventoryState.OBSOLETE
    else:
        state = InventoryState.NORMAL

    return DerivedState(
        state=state,
        needs_reorder=needs_reorder,
        below_minimum=below_minimum,
    )


def days_between(earlier: datetime | None, later: datetime) -> int | None:
    """Whole days elapsed from ``earlier`` to ``later`` (never negative)."""
    if earlier is None:
        return None
    return max((later - earlier).days, 0)
