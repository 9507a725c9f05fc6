"""
DemandNormalizer -- daily demand series from sale movements.

Responsibility:
    Turns the ledger's non-voided sale movements into one demand record per
    product per calendar day.  Re-normalizing a day replaces its quantity;
    it never accumulates, so the operation is idempotent and safe to
    re-deliver.

Architecture position:
    Kernel > Services -- imperative shell.
    Run by the post-commit sale subscriber (narrow window ending at the
    movement date) and by bulk normalization (wide window, every product).

Invariants enforced:
    - At most one DemandRecord per (product, date).
    - A day with zero sales has no record.
    - In ``normalize_all`` each product runs in its own SAVEPOINT: a failing
      product is rolled back alone and reported, never aborting the run.
      Infrastructure errors (connection loss) propagate.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from stock_kernel.domain.catalog import ReferenceCatalog
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import NormalizationFailure, NormalizationSummary
from stock_kernel.exceptions import InvalidParametersError, StockKernelError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.demand import DemandRecordModel
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.base import BaseService

logger = get_logger("services.demand")


def window_dates(as_of: date, window_days: int) -> list[date]:
    """Every calendar date in ``[as_of - window_days + 1, as_of]``, oldest first."""
    if window_days < 1:
        raise InvalidParametersError("window_days", f"must be at least 1, got {window_days}")
    start = as_of - timedelta(days=window_days - 1)
    return [start + timedelta(days=offset) for offset in range(window_days)]


class DemandNormalizer(BaseService):

    def __init__(
        self,
        session: Session,
        catalog: ReferenceCatalog,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._catalog = catalog
        self._movements = MovementSelector(session)

    def normalize(
        self,
        product_id: UUID,
        window_days: int,
        as_of: date | None = None,
    ) -> int:
        """
        Rebuild the demand records of one product over a trailing window.

        Returns:
            Number of demand records written (inserted or replaced).

        Raises:
            InvalidParametersError: ``window_days`` < 1.
        """
        as_of = as_of or self.clock.today()
        dates = window_dates(as_of, window_days)
        totals = self._movements.sale_totals_by_date(product_id, dates[0], dates[-1])

        existing = {
            record.demand_date: record
            for record in self.session.scalars(
                select(DemandRecordModel)
                .where(DemandRecordModel.product_id == product_id)
                .where(DemandRecordModel.demand_date >= dates[0])
                .where(DemandRecordModel.demand_date <= dates[-1])
            )
        }

        now = self.clock.now()
        written = 0
        removed = 0
        for day in dates:
            quantity = totals.get(day, 0)
            record = existing.get(day)
            if quantity > 0:
                if record is None:
                    self.session.add(DemandRecordModel(
                        product_id=product_id,
                        demand_date=day,
                        quantity=quantity,
                        period=day.strftime("%Y-%m"),
                        normalized_at=now,
                    ))
                else:
                    record.quantity = quantity
                    record.normalized_at = now
                written += 1
            elif record is not None:
                self.session.delete(record)
                removed += 1

        self.session.flush()
        logger.info(
            "demand_normalized",
            extra={
                "product_id": str(product_id),
                "window_start": dates[0].isoformat(),
                "window_end": dates[-1].isoformat(),
                "records_written": written,
                "records_removed": removed,
            },
        )
        return written

    def product_ids(self) -> list[UUID]:
        """Products known to the catalog or present in the ledger."""
        ids: set[UUID] = set(self._catalog.list_product_ids())
        ids.update(self._movements.product_ids())
        return sorted(ids, key=str)

    def normalize_all(
        self,
        window_days: int,
        as_of: date | None = None,
        product_ids: Iterable[UUID] | None = None,
    ) -> NormalizationSummary:
        """
        Normalize every product, isolating failures per product.

        Raises:
            InvalidParametersError: ``window_days`` < 1 (checked up front).
            OperationalError / InterfaceError: storage unavailable.
        """
        window_dates(as_of or self.clock.today(), window_days)
        ids = list(product_ids) if product_ids is not None else self.product_ids()

        succeeded = 0
        written = 0
        failures: list[NormalizationFailure] = []

        for product_id in ids:
            try:
                with self.session.begin_nested():
                    written += self.normalize(product_id, window_days, as_of)
                succeeded += 1
            except (OperationalError, InterfaceError):
                raise
            except StockKernelError as exc:
                failures.append(NormalizationFailure(product_id, exc.code, str(exc)))
                logger.warning(
                    "demand_normalization_failed",
                    extra={"product_id": str(product_id), "error_code": exc.code},
                )
            except Exception as exc:
                failures.append(
                    NormalizationFailure(product_id, type(exc).__name__, str(exc))
                )
                logger.exception(
                    "demand_normalization_failed",
                    extra={"product_id": str(product_id), "error_code": type(exc).__name__},
                )

        summary = NormalizationSummary(
            window_days=window_days,
            products_processed=len(ids),
            products_succeeded=succeeded,
            records_written=written,
            failures=tuple(failures),
        )
        logger.info(
            "demand_normalization_completed",
            extra={
                "window_days": window_days,
                "products_processed": summary.products_processed,
                "products_failed": summary.products_failed,
                "records_written": written,
            },
        )
        return summary
