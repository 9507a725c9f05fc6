"""
ORM-level immutability of ledger movements and optimization results.

Voiding is the only permitted change to a movement, and only once.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from stock_kernel.domain.dtos import OptimizationParameters
from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.models.movement import MovementModel
from stock_kernel.models.optimization import OptimizationResultModel


def _movement_row(session, movement_id) -> MovementModel:
    return session.execute(
        select(MovementModel).where(MovementModel.id == movement_id)
    ).scalar_one()


class TestMovementImmutability:

    def test_quantity_cannot_change(self, session, stock_in):
        record = stock_in(10)
        row = _movement_row(session, record.movement_id)
        row.quantity = 99
        with pytest.raises(ImmutabilityViolationError, match="quantity"):
            session.flush()

    def test_running_balance_cannot_change(self, session, stock_in):
        record = stock_in(10)
        row = _movement_row(session, record.movement_id)
        row.running_balance = 0
        with pytest.raises(ImmutabilityViolationError, match="running_balance"):
            session.flush()

    def test_movement_cannot_be_deleted(self, session, stock_in):
        record = stock_in(10)
        session.delete(_movement_row(session, record.movement_id))
        with pytest.raises(ImmutabilityViolationError, match="void them instead"):
            session.flush()

    def test_void_fields_may_be_set_once(self, session, services, stock_in, actor_id):
        record = stock_in(10)
        services.ledger.void(record.movement_id, actor_id, "typo")
        row = _movement_row(session, record.movement_id)
        assert row.voided is True

        row.void_reason = "changed my mind"
        with pytest.raises(ImmutabilityViolationError, match="void_reason"):
            session.flush()

    def test_voided_movement_cannot_be_unvoided(self, session, services, stock_in, actor_id):
        record = stock_in(10)
        services.ledger.void(record.movement_id, actor_id)
        row = _movement_row(session, record.movement_id)
        row.voided = False
        with pytest.raises(ImmutabilityViolationError, match="un-voided"):
            session.flush()

    def test_guard_can_be_lifted_for_tests(self, session, stock_in, without_immutability):
        record = stock_in(10)
        row = _movement_row(session, record.movement_id)
        row.reason = "rewritten"
        session.flush()
        assert _movement_row(session, record.movement_id).reason == "rewritten"


class TestOptimizationResultImmutability:

    def _result_row(self, session, services, product, actor_id) -> OptimizationResultModel:
        outcome = services.optimizer.compute_optimization(
            product.product_id,
            OptimizationParameters(annual_demand=Decimal("1200")),
            actor_id,
        )
        return session.execute(
            select(OptimizationResultModel)
            .where(OptimizationResultModel.id == outcome.result_id)
        ).scalar_one()

    def test_result_cannot_change(self, session, services, product, actor_id):
        row = self._result_row(session, services, product, actor_id)
        row.eoq = Decimal("1")
        with pytest.raises(ImmutabilityViolationError, match="eoq") as excinfo:
            session.flush()
        assert excinfo.value.field == "eoq"

    def test_result_cannot_be_deleted(self, session, services, product, actor_id):
        row = self._result_row(session, services, product, actor_id)
        session.delete(row)
        with pytest.raises(ImmutabilityViolationError, match="cannot be deleted"):
            session.flush()
