"""
OptimizationCalculator: input fallback, demand derivation and persistence.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.catalog import ProductRef
from stock_kernel.domain.dtos import OptimizationParameters
from stock_kernel.exceptions import (
    InvalidParametersError,
    OptimizationResultNotFoundError,
    ProductNotFoundError,
)


class TestExplicitInputs:

    def test_annual_demand_supplied(self, services, product, actor_id):
        outcome = services.optimizer.compute_optimization(
            product.product_id,
            OptimizationParameters(annual_demand=Decimal("1200")),
            actor_id,
        )
        assert outcome.eoq == Decimal("244.95")
        assert outcome.average_daily_demand == Decimal("3.29")
        assert outcome.demand_std_dev == Decimal("0")
        assert outcome.suggested_safety_stock == Decimal("0.00")
        assert outcome.reorder_point == Decimal("23.01")
        assert outcome.orders_per_year == Decimal("4.90")
        assert outcome.total_annual_cost == Decimal("489.90")
        # Catalog fallbacks
        assert outcome.order_cost == Decimal("50")
        assert outcome.holding_cost == Decimal("2")
        assert outcome.unit_cost == Decimal("12.50")
        assert outcome.lead_time_days == 7
        # Configured defaults
        assert outcome.service_level_factor == Decimal("1.65")
        assert outcome.demand_window_days == 90

    def test_supplied_safety_stock_wins(self, services, product, actor_id):
        outcome = services.optimizer.compute_optimization(
            product.product_id,
            OptimizationParameters(annual_demand=Decimal("1200"), safety_stock=Decimal("20")),
            actor_id,
        )
        assert outcome.supplied_safety_stock == Decimal("20")
        assert outcome.safety_stock_used == Decimal("20.00")
        assert outcome.reorder_point == Decimal("43.01")

    def test_whole_unit_safety_stock(self, services, product, actor_id):
        outcome = services.optimizer.compute_optimization(
            product.product_id,
            OptimizationParameters(annual_demand=Decimal("1200"), safety_stock=20),
            actor_id,
        )
        assert outcome.supplied_safety_stock == Decimal("20")
        assert outcome.safety_stock_used == Decimal("20.00")
        assert outcome.reorder_point == Decimal("43.01")

    def test_parameters_override_catalog(self, services, product, actor_id):
        outcome = services.optimizer.compute_optimization(
            product.product_id,
            OptimizationParameters(
                annual_demand=Decimal("1000"),
                order_cost=Decimal("20"),
                holding_cost=Decimal("4"),
                lead_time_days=10,
            ),
            actor_id,
        )
        assert outcome.eoq == Decimal("100.00")
        assert outcome.lead_time_days == 10
        assert outcome.days_between_orders == Decimal("36.50")

    def test_zero_demand_yields_zero_order(self, services, product, actor_id):
        outcome = services.optimizer.compute_optimization(
            product.product_id,
            OptimizationParameters(annual_demand=Decimal("0")),
            actor_id,
        )
        assert outcome.eoq == Decimal("0.00")
        assert outcome.days_between_orders is None
        assert outcome.total_annual_cost == Decimal("0.00")


class TestDerivedDemand:

    def _sell_on(self, sell, stock_in, quantities_by_day):
        stock_in(100)
        for day, quantity in quantities_by_day.items():
            sell(quantity, occurred_at=datetime(2024, 6, day, 10, 0, tzinfo=timezone.utc))

    def test_annualizes_window_total(self, services, stock_in, sell, product, actor_id):
        self._sell_on(sell, stock_in, {day: 3 for day in range(6, 16)})
        services.normalizer.normalize(product.product_id, 10)

        outcome = services.optimizer.compute_optimization(
            product.product_id, OptimizationParameters(demand_window_days=10), actor_id,
        )
        assert outcome.annual_demand == Decimal("1095.00")
        assert outcome.demand_std_dev == Decimal("0")
        assert outcome.average_daily_demand == Decimal("3.00")

    def test_std_dev_counts_days_without_sales(self, services, stock_in, sell, product, actor_id):
        self._sell_on(sell, stock_in, {10: 5, 13: 5})
        services.normalizer.normalize(product.product_id, 10)

        outcome = services.optimizer.compute_optimization(
            product.product_id, OptimizationParameters(demand_window_days=10), actor_id,
        )
        assert outcome.annual_demand == Decimal("365.00")
        assert outcome.demand_std_dev == Decimal("2")
        assert outcome.suggested_safety_stock == Decimal("8.73")
        assert outcome.reorder_point == Decimal("15.73")
        assert outcome.eoq == Decimal("135.09")

    def test_no_demand_history(self, services, product, actor_id):
        outcome = services.optimizer.compute_optimization(
            product.product_id, OptimizationParameters(), actor_id,
        )
        assert outcome.annual_demand == Decimal("0")
        assert outcome.eoq == Decimal("0.00")
        assert outcome.reorder_point == Decimal("0.00")


class TestFallbacks:

    def test_holding_cost_from_unit_cost_rate(self, services, bare_product, actor_id):
        outcome = services.optimizer.compute_optimization(
            bare_product.product_id,
            OptimizationParameters(
                annual_demand=Decimal("100"),
                unit_cost=Decimal("10"),
                order_cost=Decimal("25"),
                lead_time_days=5,
            ),
            actor_id,
        )
        assert outcome.holding_cost == Decimal("2.50")

    def test_lead_time_from_supplier(self, services, catalog, supplier, actor_id):
        sourced = ProductRef(
            product_id=uuid4(),
            sku="SRC-001",
            name="Sourced part",
            supplier_id=supplier.supplier_id,
            unit_cost=Decimal("4"),
            order_cost=Decimal("10"),
            holding_cost=Decimal("1"),
        )
        catalog.add_product(sourced)
        outcome = services.optimizer.compute_optimization(
            sourced.product_id, OptimizationParameters(annual_demand=Decimal("50")), actor_id,
        )
        assert outcome.lead_time_days == supplier.lead_time_days

    @pytest.mark.parametrize(
        "params, parameter",
        [
            (OptimizationParameters(order_cost=Decimal("5"), lead_time_days=3), "unit_cost"),
            (OptimizationParameters(unit_cost=Decimal("5"), lead_time_days=3), "order_cost"),
            (OptimizationParameters(unit_cost=Decimal("5"), order_cost=Decimal("5")), "lead_time_days"),
        ],
    )
    def test_missing_input(self, services, bare_product, actor_id, params, parameter):
        with pytest.raises(InvalidParametersError, match=f"'{parameter}'"):
            services.optimizer.compute_optimization(bare_product.product_id, params, actor_id)


class TestValidation:

    @pytest.mark.parametrize(
        "params, parameter",
        [
            (OptimizationParameters(unit_cost=Decimal("-1")), "unit_cost"),
            (OptimizationParameters(lead_time_days=-1), "lead_time_days"),
            (OptimizationParameters(service_level_factor=Decimal("-0.5")), "service_level_factor"),
            (OptimizationParameters(demand_window_days=0), "demand_window_days"),
            (OptimizationParameters(holding_cost=Decimal("0")), "holding_cost"),
            (OptimizationParameters(annual_demand=Decimal("-1")), "annual_demand"),
            (OptimizationParameters(safety_stock=Decimal("-1")), "safety_stock"),
        ],
    )
    def test_rejects_out_of_range(self, services, product, actor_id, params, parameter):
        with pytest.raises(InvalidParametersError, match=f"'{parameter}'"):
            services.optimizer.compute_optimization(product.product_id, params, actor_id)

    def test_unknown_product(self, services, actor_id):
        with pytest.raises(ProductNotFoundError):
            services.optimizer.compute_optimization(uuid4(), OptimizationParameters(), actor_id)


class TestPersistence:

    def test_latest_result_is_in_force(self, services, product, actor_id):
        first = services.optimizer.compute_optimization(
            product.product_id, OptimizationParameters(annual_demand=Decimal("100")), actor_id,
        )
        second = services.optimizer.compute_optimization(
            product.product_id, OptimizationParameters(annual_demand=Decimal("400")), actor_id,
        )
        latest = services.optimizations.latest_for_product(product.product_id)
        history = services.optimizations.history_for_product(product.product_id)

        assert latest.result_id == second.result_id
        assert [r.result_id for r in history] == [second.result_id, first.result_id]
        assert services.optimizations.get(first.result_id).eoq == first.eoq

    def test_no_result_yet(self, services, product):
        assert services.optimizations.latest_for_product(product.product_id) is None

    def test_unknown_result(self, services):
        with pytest.raises(OptimizationResultNotFoundError):
            services.optimizations.get(uuid4())

    def test_stored_outputs_read_back_with_two_places(self, session, services, product, actor_id):
        computed = services.optimizer.compute_optimization(
            product.product_id, OptimizationParameters(annual_demand=Decimal("3650")), actor_id,
        )
        session.expire_all()
        stored = services.optimizations.get(computed.result_id)

        assert stored.reorder_point == computed.reorder_point
        assert str(stored.reorder_point) == "70.00"
        assert str(stored.eoq) == str(computed.eoq)
        assert stored.eoq.as_tuple().exponent == -2
