"""
AlertSelector -- alert queries, listing and statistics.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.dtos import AlertFilter, AlertStatistics, AlertView
from stock_kernel.domain.types import OPEN_ALERT_STATES, AlertType
from stock_kernel.exceptions import AlertNotFoundError
from stock_kernel.models.alert import AlertModel
from stock_kernel.selectors.base import BaseSelector

_OPEN_VALUES = tuple(s.value for s in OPEN_ALERT_STATES)


class AlertSelector(BaseSelector):

    def get(self, alert_id: UUID) -> AlertView:
        model = self.session.get(AlertModel, alert_id)
        if model is None:
            raise AlertNotFoundError(alert_id)
        return model.to_dto()

    def find_open(self, product_id: UUID, alert_type: AlertType) -> AlertView | None:
        """The non-terminal alert of this (product, type), if any."""
        model = self.session.execute(
            select(AlertModel)
            .where(AlertModel.product_id == product_id)
            .where(AlertModel.alert_type == alert_type.value)
            .where(AlertModel.state.in_(_OPEN_VALUES))
            .order_by(AlertModel.triggered_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_alerts(self, criteria: AlertFilter | None = None) -> list[AlertView]:
        """Alerts matching ``criteria``, newest first."""
        criteria = criteria or AlertFilter()
        stmt = select(AlertModel)
        if criteria.product_id is not None:
            stmt = stmt.where(AlertModel.product_id == criteria.product_id)
        if criteria.states:
            stmt = stmt.where(AlertModel.state.in_([s.value for s in criteria.states]))
        if criteria.open_only:
            stmt = stmt.where(AlertModel.state.in_(_OPEN_VALUES))
        if criteria.types:
            stmt = stmt.where(AlertModel.alert_type.in_([t.value for t in criteria.types]))
        if criteria.severities:
            stmt = stmt.where(
                AlertModel.severity.in_([s.value for s in criteria.severities])
            )
        stmt = (
            stmt.order_by(AlertModel.triggered_at.desc(), AlertModel.created_at.desc())
            .limit(criteria.limit)
            .offset(criteria.offset)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def statistics(self) -> AlertStatistics:
        """Alert counts grouped by state, type and severity."""

        def _grouped(column) -> dict[str, int]:
            rows = self.session.execute(
                select(column, func.count()).group_by(column)
            ).all()
            return {value: count for value, count in rows}

        by_state = _grouped(AlertModel.state)
        total = sum(by_state.values())
        open_count = sum(by_state.get(v, 0) for v in _OPEN_VALUES)
        return AlertStatistics(
            total=total,
            open=open_count,
            by_state=by_state,
            by_type=_grouped(AlertModel.alert_type),
            by_severity=_grouped(AlertModel.severity),
        )
