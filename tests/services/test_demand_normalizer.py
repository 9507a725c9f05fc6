"""
DemandNormalizer: daily aggregation, idempotent replacement and bulk runs.
"""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from stock_kernel.exceptions import InvalidParametersError
from stock_kernel.selectors.demand_selector import DemandSelector
from stock_kernel.services.demand_service import window_dates

JUNE_12 = datetime(2024, 6, 12, 9, 0, tzinfo=timezone.utc)
JUNE_14_MORNING = datetime(2024, 6, 14, 8, 0, tzinfo=timezone.utc)
JUNE_14_EVENING = datetime(2024, 6, 14, 23, 59, tzinfo=timezone.utc)


def _series(session, product_id, start=date(2024, 6, 1), end=date(2024, 6, 30)):
    return {
        r.demand_date: r.quantity
        for r in DemandSelector(session).records_between(product_id, start, end)
    }


class TestWindowDates:

    def test_window_ends_on_as_of(self):
        assert window_dates(date(2024, 6, 15), 3) == [
            date(2024, 6, 13), date(2024, 6, 14), date(2024, 6, 15),
        ]

    def test_single_day_window(self):
        assert window_dates(date(2024, 6, 15), 1) == [date(2024, 6, 15)]

    def test_window_must_be_positive(self):
        with pytest.raises(InvalidParametersError, match="window_days"):
            window_dates(date(2024, 6, 15), 0)


class TestNormalize:

    def test_sums_sales_per_day(self, services, session, stock_in, sell, product):
        stock_in(100)
        sell(3, occurred_at=JUNE_14_MORNING)
        sell(4, occurred_at=JUNE_14_EVENING)
        sell(2, occurred_at=JUNE_12)

        written = services.normalizer.normalize(product.product_id, 7)

        assert written == 2
        assert _series(session, product.product_id) == {
            date(2024, 6, 12): 2,
            date(2024, 6, 14): 7,
        }

    def test_records_carry_period(self, services, session, stock_in, sell, product):
        stock_in(100)
        sell(3, occurred_at=JUNE_12)
        services.normalizer.normalize(product.product_id, 7)
        [record] = DemandSelector(session).records_between(
            product.product_id, date(2024, 6, 1), date(2024, 6, 30),
        )
        assert record.period == "2024-06"

    def test_is_idempotent(self, services, session, stock_in, sell, product):
        stock_in(100)
        sell(3, occurred_at=JUNE_14_MORNING)
        services.normalizer.normalize(product.product_id, 7)
        services.normalizer.normalize(product.product_id, 7)
        assert _series(session, product.product_id) == {date(2024, 6, 14): 3}

    def test_replaces_rather_than_accumulates(self, services, session, stock_in, sell, product):
        stock_in(100)
        sell(3, occurred_at=JUNE_14_MORNING)
        services.normalizer.normalize(product.product_id, 7)
        sell(5, occurred_at=JUNE_14_EVENING)
        services.normalizer.normalize(product.product_id, 7)
        assert _series(session, product.product_id) == {date(2024, 6, 14): 8}

    def test_voided_sale_removes_the_day(self, services, session, stock_in, sell, product, actor_id):
        stock_in(100)
        sale = sell(3, occurred_at=JUNE_12)
        services.normalizer.normalize(product.product_id, 7)
        services.ledger.void(sale.movement_id, actor_id)
        services.normalizer.normalize(product.product_id, 7)
        assert _series(session, product.product_id) == {}

    def test_ignores_non_sale_movements(self, services, session, stock_in, product):
        stock_in(100)
        assert services.normalizer.normalize(product.product_id, 7) == 0
        assert _series(session, product.product_id) == {}

    def test_sales_outside_window_are_untouched(self, services, session, stock_in, sell, product):
        stock_in(100)
        sell(2, occurred_at=JUNE_12)
        services.normalizer.normalize(product.product_id, 7)

        sell(6, occurred_at=JUNE_14_MORNING)
        # Narrow window ending on the 14th leaves the 12th as it was.
        services.normalizer.normalize(product.product_id, 1, as_of=date(2024, 6, 14))
        assert _series(session, product.product_id) == {
            date(2024, 6, 12): 2,
            date(2024, 6, 14): 6,
        }


class TestNormalizeAll:

    def test_covers_catalog_products(self, services, stock_in, sell, product, bare_product, inactive_product):
        stock_in(100)
        sell(4, occurred_at=JUNE_14_MORNING)

        summary = services.normalizer.normalize_all(30)

        assert summary.window_days == 30
        assert summary.products_processed == 3
        assert summary.products_succeeded == 3
        assert summary.records_written == 1
        assert summary.products_failed == 0

    def test_product_ids_are_sorted(self, services, product, bare_product, inactive_product):
        ids = services.normalizer.product_ids()
        assert ids == sorted(
            [product.product_id, bare_product.product_id, inactive_product.product_id],
            key=str,
        )

    def test_failure_is_isolated(self, services, session, stock_in, sell, product, bare_product, monkeypatch):
        stock_in(100)
        sell(4, occurred_at=JUNE_14_MORNING)
        original = services.normalizer.normalize

        def _normalize(product_id, window_days, as_of=None):
            if product_id == bare_product.product_id:
                raise InvalidParametersError("window_days", "simulated")
            return original(product_id, window_days, as_of)

        monkeypatch.setattr(services.normalizer, "normalize", _normalize)
        summary = services.normalizer.normalize_all(30)

        assert summary.products_failed == 1
        assert summary.failures[0].product_id == bare_product.product_id
        assert summary.failures[0].error_code == "INVALID_PARAMETERS"
        assert summary.products_succeeded == 2
        assert _series(session, product.product_id) == {date(2024, 6, 14): 4}

    def test_unexpected_error_is_reported_by_type(self, services, product, monkeypatch):
        def _normalize(product_id, window_days, as_of=None):
            raise KeyError("boom")

        monkeypatch.setattr(services.normalizer, "normalize", _normalize)
        summary = services.normalizer.normalize_all(30, product_ids=[product.product_id])
        assert summary.failures[0].error_code == "KeyError"

    def test_storage_errors_propagate(self, services, product, monkeypatch):
        def _normalize(product_id, window_days, as_of=None):
            raise OperationalError("SELECT 1", {}, Exception("database is gone"))

        monkeypatch.setattr(services.normalizer, "normalize", _normalize)
        with pytest.raises(OperationalError):
            services.normalizer.normalize_all(30, product_ids=[product.product_id])

    def test_invalid_window_fails_up_front(self, services):
        with pytest.raises(InvalidParametersError):
            services.normalizer.normalize_all(0)
