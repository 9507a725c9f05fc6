"""
MovementLedger: validation, running balances, voids and staged events.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.dtos import MovementDraft
from stock_kernel.domain.types import MovementKind
from stock_kernel.exceptions import (
    AlreadyVoidedError,
    InsufficientStockError,
    InvalidMovementError,
    MovementNotFoundError,
    ProductNotFoundError,
    SupplierNotFoundError,
)
from stock_kernel.services.ledger_service import MovementLedger


class TestAppend:

    def test_running_balance_accumulates(self, services, product, actor_id):
        ledger = services.ledger
        pid = product.product_id
        first = ledger.append(MovementDraft(pid, MovementKind.OPENING_BALANCE, 50), actor_id)
        second = ledger.append(MovementDraft(pid, MovementKind.SALE_OUT, 8), actor_id)
        third = ledger.append(MovementDraft(pid, MovementKind.RETURN_IN, 3), actor_id)

        assert [first.running_balance, second.running_balance, third.running_balance] == [
            50, 42, 45,
        ]
        assert first.sequence < second.sequence < third.sequence

    def test_record_carries_draft_fields(self, services, product, supplier, actor_id, clock):
        record = services.ledger.append(
            MovementDraft(
                product_id=product.product_id,
                kind=MovementKind.PURCHASE_IN,
                quantity=20,
                unit_cost=Decimal("12.50"),
                lot_number="LOT-7",
                expiry_date=date(2025, 1, 31),
                supplier_id=supplier.supplier_id,
                reason="initial order",
                reference="PO-1",
            ),
            actor_id,
        )
        assert record.kind == MovementKind.PURCHASE_IN
        assert record.unit_cost == Decimal("12.50")
        assert record.lot_number == "LOT-7"
        assert record.expiry_date == date(2025, 1, 31)
        assert record.supplier_id == supplier.supplier_id
        assert record.actor_id == actor_id
        assert record.occurred_at == clock.now()
        assert record.signed_quantity == 20
        assert not record.voided

    def test_backdated_movement_keeps_its_timestamp(self, services, product, actor_id):
        when = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
        record = services.ledger.append(
            MovementDraft(product.product_id, MovementKind.OPENING_BALANCE, 5, occurred_at=when),
            actor_id,
        )
        assert record.occurred_at == when

    def test_stages_one_event_per_append(self, services, outbox, product, actor_id):
        record = services.ledger.append(
            MovementDraft(product.product_id, MovementKind.OPENING_BALANCE, 5), actor_id,
        )
        events = outbox.drain()
        assert len(events) == 1
        assert events[0].movement_id == record.movement_id
        assert events[0].voided is False
        assert not events[0].is_sale

    def test_out_movement_cannot_go_negative(self, services, stock_in, product, actor_id):
        stock_in(5)
        with pytest.raises(InsufficientStockError, match="available 5, requested 6"):
            services.ledger.append(
                MovementDraft(product.product_id, MovementKind.SALE_OUT, 6), actor_id,
            )

    def test_backorder_mode_allows_negative(
        self, session, catalog, outbox, clock, product, actor_id,
    ):
        ledger = MovementLedger(session, catalog, outbox, clock, allow_negative_balance=True)
        record = ledger.append(
            MovementDraft(product.product_id, MovementKind.SALE_OUT, 4), actor_id,
        )
        assert record.running_balance == -4


class TestValidation:

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_quantity_must_be_positive(self, services, product, actor_id, quantity):
        with pytest.raises(InvalidMovementError, match="must be positive"):
            services.ledger.append(
                MovementDraft(product.product_id, MovementKind.OPENING_BALANCE, quantity),
                actor_id,
            )

    @pytest.mark.parametrize("quantity", [2.5, True, "3"])
    def test_quantity_must_be_an_integer(self, services, product, actor_id, quantity):
        with pytest.raises(InvalidMovementError, match="must be an integer"):
            services.ledger.append(
                MovementDraft(product.product_id, MovementKind.OPENING_BALANCE, quantity),
                actor_id,
            )

    def test_unknown_kind(self, services, product, actor_id):
        with pytest.raises(InvalidMovementError, match="unknown movement kind"):
            services.ledger.append(
                MovementDraft(product.product_id, "teleport_in", 1), actor_id,
            )

    def test_unknown_product(self, services, actor_id):
        with pytest.raises(ProductNotFoundError):
            services.ledger.append(
                MovementDraft(uuid4(), MovementKind.OPENING_BALANCE, 1), actor_id,
            )

    def test_inactive_product(self, services, inactive_product, actor_id):
        with pytest.raises(InvalidMovementError, match="inactive"):
            services.ledger.append(
                MovementDraft(inactive_product.product_id, MovementKind.OPENING_BALANCE, 1),
                actor_id,
            )

    def test_negative_unit_cost(self, services, product, actor_id):
        with pytest.raises(InvalidMovementError, match="unit cost"):
            services.ledger.append(
                MovementDraft(
                    product.product_id, MovementKind.OPENING_BALANCE, 1,
                    unit_cost=Decimal("-0.01"),
                ),
                actor_id,
            )

    def test_purchase_requires_supplier(self, services, product, actor_id):
        with pytest.raises(InvalidMovementError, match="requires a supplier"):
            services.ledger.append(
                MovementDraft(product.product_id, MovementKind.PURCHASE_IN, 1), actor_id,
            )

    def test_purchase_supplier_must_exist(self, services, product, actor_id):
        with pytest.raises(SupplierNotFoundError):
            services.ledger.append(
                MovementDraft(
                    product.product_id, MovementKind.PURCHASE_IN, 1, supplier_id=uuid4(),
                ),
                actor_id,
            )

    def test_rejected_movement_stages_nothing(self, services, outbox, product, actor_id):
        with pytest.raises(InsufficientStockError):
            services.ledger.append(
                MovementDraft(product.product_id, MovementKind.SALE_OUT, 1), actor_id,
            )
        assert len(outbox) == 0


class TestVoid:

    def test_void_removes_quantity_from_balance(self, services, stock_in, sell, product, actor_id):
        stock_in(20)
        sale = sell(5)
        voided = services.ledger.void(sale.movement_id, actor_id, "keyed twice")

        assert voided.voided
        assert voided.void_reason == "keyed twice"
        assert voided.voided_by_id == actor_id
        assert services.movements.ledger_balance(product.product_id) == 20
        # The stored running balance is history and is never rewritten.
        assert voided.running_balance == 15

    def test_void_stages_voided_event(self, services, outbox, stock_in, sell, actor_id):
        stock_in(20)
        sale = sell(5)
        outbox.drain()

        services.ledger.void(sale.movement_id, actor_id)
        events = outbox.drain()
        assert len(events) == 1
        assert events[0].voided is True
        assert events[0].is_sale

    def test_void_twice(self, services, stock_in, actor_id):
        record = stock_in(10)
        services.ledger.void(record.movement_id, actor_id)
        with pytest.raises(AlreadyVoidedError):
            services.ledger.void(record.movement_id, actor_id)

    def test_void_unknown(self, services, actor_id):
        with pytest.raises(MovementNotFoundError):
            services.ledger.void(uuid4(), actor_id)

    def test_void_of_inbound_cannot_go_negative(self, services, stock_in, sell, actor_id):
        receipt = stock_in(10)
        sell(8)
        with pytest.raises(InsufficientStockError):
            services.ledger.void(receipt.movement_id, actor_id)

    def test_voided_movements_can_be_excluded(self, services, stock_in, product, actor_id):
        kept = stock_in(10)
        dropped = stock_in(4)
        services.ledger.void(dropped.movement_id, actor_id)

        everything = services.movements.list_for_product(product.product_id)
        live = services.movements.list_for_product(product.product_id, include_voided=False)
        assert [m.movement_id for m in everything] == [kept.movement_id, dropped.movement_id]
        assert [m.movement_id for m in live] == [kept.movement_id]
