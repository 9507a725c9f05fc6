"""
InventoryStateAggregator: snapshot quantities, state derivation and
threshold / block edits.
"""

from uuid import uuid4

import pytest

from stock_kernel.domain.types import InventoryState
from stock_kernel.exceptions import (
    InvalidThresholdError,
    ProductNotFoundError,
    SnapshotNotFoundError,
)


class TestRecompute:

    def test_first_touch_seeds_catalog_thresholds(self, services, stock_in, product):
        snapshot = services.inventory.get_snapshot(stock_in(50).product_id)

        assert snapshot.product_id == product.product_id
        assert snapshot.available == 50
        assert snapshot.minimum == 10
        assert snapshot.maximum == 500
        assert snapshot.reorder_point == 20
        assert snapshot.location == "A-01"
        assert snapshot.state == InventoryState.NORMAL
        assert not snapshot.needs_reorder
        assert not snapshot.below_minimum

    def test_available_tracks_the_ledger(self, services, stock_in, sell, product, actor_id):
        stock_in(50)
        sale = sell(12)
        assert services.inventory.get_snapshot(product.product_id).available == 38

        services.ledger.void(sale.movement_id, actor_id)
        snapshot = services.aggregator.recompute(product.product_id, actor_id)
        assert snapshot.available == services.movements.ledger_balance(product.product_id) == 50

    def test_reorder_flag_without_state_change(self, services, stock_in, sell, product):
        stock_in(50)
        sell(35)
        snapshot = services.inventory.get_snapshot(product.product_id)
        assert snapshot.available == 15
        assert snapshot.needs_reorder
        assert not snapshot.below_minimum
        assert snapshot.state == InventoryState.NORMAL

    def test_low_when_below_minimum(self, services, stock_in, sell, product):
        stock_in(50)
        sell(42)
        snapshot = services.inventory.get_snapshot(product.product_id)
        assert snapshot.available == 8
        assert snapshot.state == InventoryState.LOW
        assert snapshot.below_minimum
        assert snapshot.needs_reorder

    def test_critical_at_zero(self, services, stock_in, sell, product):
        stock_in(5)
        sell(5)
        assert services.inventory.get_snapshot(product.product_id).state == InventoryState.CRITICAL

    def test_excess_at_maximum(self, services, stock_in, product):
        stock_in(500)
        assert services.inventory.get_snapshot(product.product_id).state == InventoryState.EXCESS

    def test_obsolete_after_idle_period(self, services, stock_in, clock, product, actor_id):
        stock_in(50)
        clock.advance_days(31)
        snapshot = services.aggregator.recompute(product.product_id, actor_id)
        assert snapshot.days_since_last_sale == 31
        assert snapshot.state == InventoryState.OBSOLETE

    def test_recent_sale_resets_idle_days(self, services, stock_in, sell, clock, product):
        stock_in(50)
        clock.advance_days(40)
        sell(1)
        snapshot = services.inventory.get_snapshot(product.product_id)
        assert snapshot.days_since_last_sale == 0
        assert snapshot.state == InventoryState.NORMAL

    def test_timestamps(self, services, stock_in, clock, product):
        stock_in(5)
        snapshot = services.inventory.get_snapshot(product.product_id)
        assert snapshot.last_movement_at == clock.now()
        assert snapshot.last_recomputed_at == clock.now()

    def test_unknown_product(self, services, actor_id):
        with pytest.raises(ProductNotFoundError):
            services.aggregator.recompute(uuid4(), actor_id)

    def test_untouched_product_has_no_snapshot(self, services, bare_product):
        with pytest.raises(SnapshotNotFoundError, match="InventorySnapshot not found"):
            services.aggregator.get_snapshot(bare_product.product_id)


class TestThresholds:

    def test_update_rederives_state(self, services, stock_in, product, actor_id):
        stock_in(30)
        snapshot = services.aggregator.update_thresholds(
            product.product_id, actor_id, minimum=40, maximum=100, reorder_point=45,
        )
        assert snapshot.state == InventoryState.LOW
        assert snapshot.needs_reorder
        assert snapshot.available == 30

    def test_partial_update_keeps_other_fields(self, services, stock_in, product, actor_id):
        stock_in(30)
        snapshot = services.aggregator.update_thresholds(
            product.product_id, actor_id, location="B-07",
        )
        assert (snapshot.minimum, snapshot.maximum, snapshot.reorder_point) == (10, 500, 20)
        assert snapshot.location == "B-07"

    def test_clear_maximum(self, services, stock_in, product, actor_id):
        stock_in(500)
        snapshot = services.aggregator.update_thresholds(
            product.product_id, actor_id, clear_maximum=True,
        )
        assert snapshot.maximum is None
        assert snapshot.state == InventoryState.NORMAL

    def test_thresholds_before_first_movement(self, services, bare_product, actor_id):
        snapshot = services.aggregator.update_thresholds(
            bare_product.product_id, actor_id, minimum=5, reorder_point=8,
        )
        assert snapshot.available == 0
        assert snapshot.state == InventoryState.CRITICAL

    @pytest.mark.parametrize(
        "changes, message",
        [
            ({"minimum": -1}, "minimum cannot be negative"),
            ({"reorder_point": -1}, "reorder point cannot be negative"),
            ({"maximum": -1}, "maximum cannot be negative"),
            ({"maximum": 5}, "maximum 5 is below minimum 10"),
        ],
    )
    def test_rejects_invalid_thresholds(self, services, stock_in, product, actor_id, changes, message):
        stock_in(30)
        with pytest.raises(InvalidThresholdError, match=message):
            services.aggregator.update_thresholds(product.product_id, actor_id, **changes)

        unchanged = services.inventory.get_snapshot(product.product_id)
        assert (unchanged.minimum, unchanged.maximum, unchanged.reorder_point) == (10, 500, 20)


class TestBlocking:

    def test_blocked_overrides_every_state(self, services, stock_in, sell, product, actor_id):
        stock_in(5)
        sell(5)
        snapshot = services.aggregator.set_blocked(
            product.product_id, True, actor_id, reason="quality hold",
        )
        assert snapshot.state == InventoryState.BLOCKED
        assert snapshot.blocked
        assert snapshot.block_reason == "quality hold"

    def test_unblock_restores_derived_state(self, services, stock_in, product, actor_id):
        stock_in(30)
        services.aggregator.set_blocked(product.product_id, True, actor_id, reason="count")
        snapshot = services.aggregator.set_blocked(product.product_id, False, actor_id)
        assert snapshot.state == InventoryState.NORMAL
        assert snapshot.block_reason is None

    def test_recompute_keeps_block(self, services, stock_in, product, actor_id):
        stock_in(30)
        services.aggregator.set_blocked(product.product_id, True, actor_id)
        stock_in(5)
        snapshot = services.inventory.get_snapshot(product.product_id)
        assert snapshot.available == 35
        assert snapshot.state == InventoryState.BLOCKED

    def test_list_snapshots_by_state(self, services, stock_in, product, actor_id):
        stock_in(30)
        services.aggregator.set_blocked(product.product_id, True, actor_id)
        blocked = services.inventory.list_snapshots((InventoryState.BLOCKED,))
        assert [s.product_id for s in blocked] == [product.product_id]
        assert services.inventory.list_snapshots((InventoryState.LOW,)) == []
