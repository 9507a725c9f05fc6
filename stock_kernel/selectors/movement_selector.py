"""
MovementSelector -- read access to the stock movement ledger.

Every quantity the kernel reports derives from here: the live balance of a
product is the signed sum of its non-voided movements, computed in SQL, and
never an incrementally maintained counter.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

from sqlalchemy import case, func, select

from stock_kernel.domain.clock import ensure_utc
from stock_kernel.domain.dtos import MovementRecord
from stock_kernel.domain.types import INBOUND_KINDS, MovementKind
from stock_kernel.exceptions import MovementNotFoundError
from stock_kernel.models.movement import MovementModel
from stock_kernel.selectors.base import BaseSelector

_INBOUND_VALUES = tuple(k.value for k in INBOUND_KINDS)


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class MovementSelector(BaseSelector):
    """Read-only ledger queries."""

    def get(self, movement_id: UUID) -> MovementRecord:
        model = self.session.get(MovementModel, movement_id)
        if model is None:
            raise MovementNotFoundError(movement_id)
        return model.to_dto()

    def list_for_product(
        self,
        product_id: UUID,
        include_voided: bool = True,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        """Movements for a product in ledger (sequence) order."""
        stmt = (
            select(MovementModel)
            .where(MovementModel.product_id == product_id)
            .order_by(MovementModel.sequence)
        )
        if not include_voided:
            stmt = stmt.where(MovementModel.voided.is_(False))
        if limit is not None:
            stmt = stmt.limit(limit)
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def ledger_balance(self, product_id: UUID) -> int:
        """Signed sum of non-voided movement quantities."""
        signed = case(
            (MovementModel.kind.in_(_INBOUND_VALUES), MovementModel.quantity),
            else_=-MovementModel.quantity,
        )
        total = self.session.execute(
            select(func.coalesce(func.sum(signed), 0))
            .where(MovementModel.product_id == product_id)
            .where(MovementModel.voided.is_(False))
        ).scalar_one()
        return int(total)

    def last_sale_at(self, product_id: UUID) -> datetime | None:
        value = self.session.execute(
            select(func.max(MovementModel.occurred_at))
            .where(MovementModel.product_id == product_id)
            .where(MovementModel.kind == MovementKind.SALE_OUT.value)
            .where(MovementModel.voided.is_(False))
        ).scalar_one_or_none()
        return ensure_utc(value)

    def first_movement_at(self, product_id: UUID) -> datetime | None:
        value = self.session.execute(
            select(func.min(MovementModel.occurred_at))
            .where(MovementModel.product_id == product_id)
            .where(MovementModel.voided.is_(False))
        ).scalar_one_or_none()
        return ensure_utc(value)

    def last_movement_at(self, product_id: UUID) -> datetime | None:
        value = self.session.execute(
            select(func.max(MovementModel.occurred_at))
            .where(MovementModel.product_id == product_id)
            .where(MovementModel.voided.is_(False))
        ).scalar_one_or_none()
        return ensure_utc(value)

    def sale_totals_by_date(
        self,
        product_id: UUID,
        start: date,
        end: date,
    ) -> dict[date, int]:
        """
        Non-voided sale quantities per UTC calendar date in ``[start, end]``.

        Grouping happens in Python so the query stays portable across
        backends with different date functions.
        """
        rows = self.session.execute(
            select(MovementModel.occurred_at, MovementModel.quantity)
            .where(MovementModel.product_id == product_id)
            .where(MovementModel.kind == MovementKind.SALE_OUT.value)
            .where(MovementModel.voided.is_(False))
            .where(MovementModel.occurred_at >= _day_start(start))
            .where(MovementModel.occurred_at < _day_start(end + timedelta(days=1)))
        ).all()

        totals: dict[date, int] = defaultdict(int)
        for occurred_at, quantity in rows:
            totals[ensure_utc(occurred_at).date()] += quantity
        return dict(totals)

    def product_ids(self) -> list[UUID]:
        """Every product that has at least one movement."""
        return list(
            self.session.scalars(
                select(MovementModel.product_id).distinct()
            )
        )

    def lots_expiring(
        self,
        product_id: UUID,
        through_date: date,
    ) -> list[tuple[str | None, date]]:
        """(lot_number, expiry_date) of non-voided inbound lots expiring on or before ``through_date``."""
        rows = self.session.execute(
            select(MovementModel.lot_number, MovementModel.expiry_date)
            .where(MovementModel.product_id == product_id)
            .where(MovementModel.kind.in_(_INBOUND_VALUES))
            .where(MovementModel.voided.is_(False))
            .where(MovementModel.expiry_date.is_not(None))
            .where(MovementModel.expiry_date <= through_date)
            .order_by(MovementModel.expiry_date)
        ).all()
        return [(lot, expiry) for lot, expiry in rows]
