"""
OptimizationCalculator -- EOQ / ROP computation and persistence.

Responsibility:
    Resolves the inputs of an optimization run (caller parameters first,
    then catalog attributes, then configured defaults), derives annual
    demand and its daily variability from the normalized demand series,
    runs the pure formula chain and stores the result as a new immutable
    row.

Architecture position:
    Kernel > Services -- imperative shell around
    ``stock_kernel.domain.optimization``.

Failure modes:
    - ProductNotFoundError: product unknown to the catalog.
    - InvalidParametersError: an input is missing after fallback or out of
      range.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.catalog import ProductRef, ReferenceCatalog
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import OptimizationOutcome, OptimizationParameters
from stock_kernel.domain.optimization import (
    DEFAULT_SERVICE_LEVEL_FACTOR,
    annualize_demand,
    compute_replenishment_plan,
    daily_demand_series,
    demand_std_dev,
)
from stock_kernel.exceptions import InvalidParametersError, ProductNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.optimization import OptimizationResultModel
from stock_kernel.selectors.demand_selector import DemandSelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.demand_service import window_dates
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.optimization")

DEFAULT_DEMAND_WINDOW_DAYS = 90
DEFAULT_HOLDING_COST_RATE = Decimal("0.25")
_STD_DEV_PLACES = Decimal("0.000001")
_DEMAND_PLACES = Decimal("0.01")


class OptimizationCalculator(BaseService):

    def __init__(
        self,
        session: Session,
        catalog: ReferenceCatalog,
        clock: Clock | None = None,
        service_level_factor: Decimal = DEFAULT_SERVICE_LEVEL_FACTOR,
        demand_window_days: int = DEFAULT_DEMAND_WINDOW_DAYS,
        default_holding_cost_rate: Decimal = DEFAULT_HOLDING_COST_RATE,
    ):
        super().__init__(session, clock)
        self._catalog = catalog
        self._service_level_factor = service_level_factor
        self._demand_window_days = demand_window_days
        self._holding_cost_rate = default_holding_cost_rate
        self._demand = DemandSelector(session)
        self._sequences = SequenceService(session)

    def _lead_time(self, params: OptimizationParameters, product: ProductRef) -> int:
        if params.lead_time_days is not None:
            return params.lead_time_days
        if product.lead_time_days is not None:
            return product.lead_time_days
        if product.supplier_id is not None:
            supplier = self._catalog.get_supplier(product.supplier_id)
            if supplier is not None and supplier.lead_time_days is not None:
                return supplier.lead_time_days
        raise InvalidParametersError("lead_time_days", "not supplied and not in catalog")

    def _resolve(
        self,
        params: OptimizationParameters,
        product: ProductRef,
    ) -> tuple[Decimal, Decimal, Decimal, int, Decimal, int, Decimal | None]:
        """(unit_cost, order_cost, holding_cost, lead_time, z, window, safety_stock) after fallback."""
        unit_cost = params.unit_cost if params.unit_cost is not None else product.unit_cost
        if unit_cost is None:
            raise InvalidParametersError("unit_cost", "not supplied and not in catalog")
        if unit_cost < 0:
            raise InvalidParametersError("unit_cost", f"must be non-negative, got {unit_cost}")

        order_cost = params.order_cost if params.order_cost is not None else product.order_cost
        if order_cost is None:
            raise InvalidParametersError("order_cost", "not supplied and not in catalog")

        if params.holding_cost is not None:
            holding_cost = params.holding_cost
        elif product.holding_cost is not None:
            holding_cost = product.holding_cost
        else:
            holding_cost = Decimal(unit_cost) * self._holding_cost_rate

        lead_time = self._lead_time(params, product)
        if lead_time < 0:
            raise InvalidParametersError("lead_time_days", f"must be non-negative, got {lead_time}")

        z = (
            params.service_level_factor
            if params.service_level_factor is not None
            else self._service_level_factor
        )
        if z < 0:
            raise InvalidParametersError("service_level_factor", f"must be non-negative, got {z}")

        window = (
            params.demand_window_days
            if params.demand_window_days is not None
            else self._demand_window_days
        )
        if window < 1:
            raise InvalidParametersError("demand_window_days", f"must be at least 1, got {window}")

        return (
            Decimal(unit_cost),
            Decimal(order_cost),
            Decimal(holding_cost),
            lead_time,
            Decimal(z),
            window,
            Decimal(params.safety_stock) if params.safety_stock is not None else None,
        )

    def compute_optimization(
        self,
        product_id: UUID,
        params: OptimizationParameters,
        actor_id: UUID,
    ) -> OptimizationOutcome:
        """
        Compute and persist EOQ, safety stock and reorder point.

        Annual demand, when not supplied, is the window's total demand
        scaled to 365 days.  The standard deviation always comes from the
        window's daily series, zero-filled on days without a record.

        Raises:
            ProductNotFoundError, InvalidParametersError.
        """
        product = self._catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        unit_cost, order_cost, holding_cost, lead_time, z, window, safety_stock = self._resolve(
            params, product
        )

        dates = window_dates(self.clock.today(), window)
        series = daily_demand_series(
            self._demand.quantities_by_date(product_id, dates[0], dates[-1]),
            dates,
        )
        sigma = demand_std_dev(series).quantize(_STD_DEV_PLACES, rounding=ROUND_HALF_UP)

        if params.annual_demand is not None:
            annual_demand = Decimal(params.annual_demand)
        else:
            annual_demand = annualize_demand(sum(series, Decimal("0")), window).quantize(
                _DEMAND_PLACES, rounding=ROUND_HALF_UP,
            )

        plan = compute_replenishment_plan(
            annual_demand=annual_demand,
            order_cost=order_cost,
            holding_cost=holding_cost,
            lead_time_days=lead_time,
            demand_std_dev_value=sigma,
            service_level_factor=z,
            safety_stock=safety_stock,
        )

        model = OptimizationResultModel(
            product_id=product_id,
            sequence=self._sequences.next_value(SequenceService.OPTIMIZATION_RESULT),
            computed_at=self.clock.now(),
            annual_demand=annual_demand,
            holding_cost=holding_cost,
            order_cost=order_cost,
            lead_time_days=lead_time,
            unit_cost=unit_cost,
            supplied_safety_stock=safety_stock,
            service_level_factor=z,
            demand_window_days=window,
            demand_std_dev=sigma,
            eoq=plan.eoq,
            average_daily_demand=plan.average_daily_demand,
            reorder_point=plan.reorder_point,
            suggested_safety_stock=plan.suggested_safety_stock,
            safety_stock_used=plan.safety_stock_used,
            total_annual_cost=plan.total_annual_cost,
            orders_per_year=plan.orders_per_year,
            days_between_orders=plan.days_between_orders,
            created_by_id=actor_id,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "optimization_computed",
            extra={
                "product_id": str(product_id),
                "result_id": str(model.id),
                "annual_demand": annual_demand,
                "eoq": plan.eoq,
                "reorder_point": plan.reorder_point,
                "safety_stock": plan.safety_stock_used,
            },
        )
        return model.to_dto()
