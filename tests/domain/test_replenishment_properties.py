"""
Property-based tests for the replenishment formulas, the ledger balance and
demand normalization.

Properties checked here:
- EOQ never falls as the ordering cost rises, and never rises as the
  holding cost rises
- After any accepted sequence of in and out movements, the snapshot's
  available quantity equals the last running balance, and a rejected
  out-movement leaves the balance untouched
- Normalizing the same window twice gives the same daily demand as
  normalizing it once, and that demand equals the sales per day

Each example builds its own in-memory database, so no state leaks between
generated cases.
"""

from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy.orm import sessionmaker

from stock_config.schema import EngineSettings
from stock_kernel.db.engine import build_engine, create_tables
from stock_kernel.domain.catalog import InMemoryCatalog, ProductRef
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.dtos import MovementDraft
from stock_kernel.domain.optimization import calculate_eoq
from stock_kernel.domain.types import MovementKind
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.selectors.demand_selector import DemandSelector
from stock_services.replenishment_engine import EngineServices

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)

_PROPERTY_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)

_IN_KINDS = [
    MovementKind.OPENING_BALANCE,
    MovementKind.ADJUSTMENT_IN,
    MovementKind.RETURN_IN,
    MovementKind.PRODUCTION_IN,
]
_OUT_KINDS = [
    MovementKind.SALE_OUT,
    MovementKind.SHRINKAGE_OUT,
    MovementKind.ADJUSTMENT_OUT,
    MovementKind.CONSUMPTION_OUT,
]


@contextmanager
def _fresh_services():
    """Kernel services over a new in-memory database with one product."""
    product = ProductRef(product_id=uuid4(), sku="PROP-001", name="Property widget")
    engine = build_engine("sqlite://")
    create_tables(engine)
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield EngineServices(
            session,
            InMemoryCatalog(products=[product]),
            EngineSettings(),
            DeterministicClock(NOW),
        ), product
    finally:
        session.rollback()
        session.close()
        engine.dispose()


# =============================================================================
# Strategies
# =============================================================================


positive_costs = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("10000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

annual_demands = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

movements = st.lists(
    st.tuples(
        st.sampled_from(_IN_KINDS + _OUT_KINDS),
        st.integers(min_value=1, max_value=500),
    ),
    min_size=1,
    max_size=25,
)

# (days before NOW, quantity)
sales = st.lists(
    st.tuples(
        st.integers(min_value=0, max_value=20),
        st.integers(min_value=1, max_value=50),
    ),
    max_size=20,
)


# =============================================================================
# EOQ
# =============================================================================


class TestEoqMonotonicity:

    @_PROPERTY_SETTINGS
    @given(
        demand=annual_demands,
        order_cost=positive_costs,
        holding_cost=positive_costs,
        raise_by=positive_costs,
    )
    def test_higher_order_cost_never_lowers_eoq(self, demand, order_cost, holding_cost, raise_by):
        lower = calculate_eoq(demand, order_cost, holding_cost)
        higher = calculate_eoq(demand, order_cost + raise_by, holding_cost)
        assert higher >= lower

    @_PROPERTY_SETTINGS
    @given(
        demand=annual_demands,
        order_cost=positive_costs,
        holding_cost=positive_costs,
        raise_by=positive_costs,
    )
    def test_higher_holding_cost_never_raises_eoq(self, demand, order_cost, holding_cost, raise_by):
        cheaper = calculate_eoq(demand, order_cost, holding_cost)
        dearer = calculate_eoq(demand, order_cost, holding_cost + raise_by)
        assert dearer <= cheaper

    @_PROPERTY_SETTINGS
    @given(order_cost=positive_costs, holding_cost=positive_costs)
    def test_zero_demand_orders_nothing(self, order_cost, holding_cost):
        assert calculate_eoq(Decimal("0"), order_cost, holding_cost) == 0


# =============================================================================
# Ledger balance
# =============================================================================


class TestLedgerBalance:

    @_PROPERTY_SETTINGS
    @given(sequence=movements)
    def test_available_matches_running_balance(self, sequence):
        actor_id = uuid4()
        with _fresh_services() as (services, product):
            expected = 0
            last_record = None
            for kind, quantity in sequence:
                draft = MovementDraft(product.product_id, kind, quantity)
                if expected + kind.signed(quantity) < 0:
                    with pytest.raises(InsufficientStockError):
                        services.ledger.append(draft, actor_id)
                    continue
                last_record = services.ledger.append(draft, actor_id)
                expected += kind.signed(quantity)
                assert last_record.running_balance == expected

            snapshot = services.aggregator.recompute(product.product_id, actor_id)
            assert snapshot.available == expected
            if last_record is not None:
                assert snapshot.available == last_record.running_balance

            records = services.movements.list_for_product(product.product_id)
            assert sum(r.signed_quantity for r in records) == expected
            assert [r.sequence for r in records] == sorted(r.sequence for r in records)


# =============================================================================
# Demand normalization
# =============================================================================


class TestNormalizationIdempotence:

    @_PROPERTY_SETTINGS
    @given(sold=sales, window_days=st.integers(min_value=1, max_value=30))
    def test_normalizing_twice_matches_normalizing_once(self, sold, window_days):
        actor_id = uuid4()
        with _fresh_services() as (services, product):
            total = sum(quantity for _, quantity in sold)
            services.ledger.append(
                MovementDraft(
                    product.product_id,
                    MovementKind.OPENING_BALANCE,
                    total + 1,
                    occurred_at=NOW - timedelta(days=30),
                ),
                actor_id,
            )
            per_day = defaultdict(int)
            for days_ago, quantity in sold:
                occurred_at = NOW - timedelta(days=days_ago)
                services.ledger.append(
                    MovementDraft(
                        product.product_id,
                        MovementKind.SALE_OUT,
                        quantity,
                        occurred_at=occurred_at,
                    ),
                    actor_id,
                )
                if days_ago < window_days:
                    per_day[occurred_at.date()] += quantity

            demand = DemandSelector(services.session)
            start = (NOW - timedelta(days=window_days - 1)).date()

            services.normalizer.normalize(product.product_id, window_days)
            once = demand.quantities_by_date(product.product_id, start, NOW.date())
            services.normalizer.normalize(product.product_id, window_days)
            twice = demand.quantities_by_date(product.product_id, start, NOW.date())

            assert twice == once
            assert {day: qty for day, qty in once.items() if qty} == dict(per_day)
