"""
OptimizationSelector -- read access to persisted optimization results.

The latest result per product (highest sequence) is the one in
force; older results remain readable for audit.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import OptimizationOutcome
from stock_kernel.exceptions import OptimizationResultNotFoundError
from stock_kernel.models.optimization import OptimizationResultModel
from stock_kernel.selectors.base import BaseSelector


class OptimizationSelector(BaseSelector):

    def get(self, result_id: UUID) -> OptimizationOutcome:
        model = self.session.get(OptimizationResultModel, result_id)
        if model is None:
            raise OptimizationResultNotFoundError(result_id)
        return model.to_dto()

    def latest_for_product(self, product_id: UUID) -> OptimizationOutcome | None:
        model = self.session.execute(
            select(OptimizationResultModel)
            .where(OptimizationResultModel.product_id == product_id)
            .order_by(OptimizationResultModel.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def history_for_product(self, product_id: UUID) -> list[OptimizationOutcome]:
        stmt = (
            select(OptimizationResultModel)
            .where(OptimizationResultModel.product_id == product_id)
            .order_by(OptimizationResultModel.sequence.desc())
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]
