"""Rule table of ``derive_inventory_state`` (first match wins)."""

from datetime import datetime, timedelta, timezone

import pytest

from stock_kernel.domain.inventory_state import days_between, derive_inventory_state
from stock_kernel.domain.types import InventoryState


def _state(**overrides):
    values = dict(
        available=50,
        minimum=10,
        maximum=100,
        reorder_point=20,
        days_since_last_sale=1,
        blocked=False,
        obsolete_after_days=30,
    )
    values.update(overrides)
    return derive_inventory_state(**values)


class TestDeriveInventoryState:

    def test_normal(self):
        derived = _state()
        assert derived.state == InventoryState.NORMAL
        assert not derived.needs_reorder
        assert not derived.below_minimum

    def test_below_minimum_is_low(self):
        derived = _state(available=8)
        assert derived.state == InventoryState.LOW
        assert derived.below_minimum
        assert derived.needs_reorder

    def test_zero_is_critical(self):
        assert _state(available=0).state == InventoryState.CRITICAL

    def test_negative_is_critical(self):
        assert _state(available=-3).state == InventoryState.CRITICAL

    def test_at_maximum_is_excess(self):
        assert _state(available=100).state == InventoryState.EXCESS

    def test_no_maximum_never_excess(self):
        assert _state(available=10_000, maximum=None).state == InventoryState.NORMAL

    def test_stale_is_obsolete(self):
        assert _state(days_since_last_sale=31).state == InventoryState.OBSOLETE

    def test_exactly_at_threshold_is_not_obsolete(self):
        assert _state(days_since_last_sale=30).state == InventoryState.NORMAL

    def test_unknown_sale_age_is_not_obsolete(self):
        assert _state(days_since_last_sale=None).state == InventoryState.NORMAL

    @pytest.mark.parametrize("available", [-5, 0, 8, 50, 100])
    def test_blocked_wins_over_everything(self, available):
        assert _state(available=available, blocked=True).state == InventoryState.BLOCKED

    def test_critical_checked_before_obsolete(self):
        assert _state(available=0, days_since_last_sale=90).state == InventoryState.CRITICAL

    def test_low_checked_before_excess(self):
        # A misconfigured maximum below minimum still reports the shortage.
        assert _state(available=5, minimum=10, maximum=4).state == InventoryState.LOW

    def test_reorder_flag_at_reorder_point(self):
        assert _state(available=20).needs_reorder
        assert not _state(available=21).needs_reorder


class TestDaysBetween:

    def test_whole_days(self):
        start = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        assert days_between(start, start + timedelta(days=3, hours=5)) == 3

    def test_none_when_never(self):
        assert days_between(None, datetime(2024, 1, 1, tzinfo=timezone.utc)) is None

    def test_never_negative(self):
        later = datetime(2024, 1, 5, tzinfo=timezone.utc)
        assert days_between(later, later - timedelta(days=2)) == 0
