"""
InventoryStateAggregator -- derived per-product inventory snapshot.

Responsibility:
    Keeps one snapshot row per product consistent with the ledger.  Every
    recompute re-reads the ledger sum and the open purchase-order exposure;
    nothing is maintained incrementally.  Threshold and block edits re-run
    the state rule table without touching quantities.

Architecture position:
    Kernel > Services -- imperative shell.
    Run by the caller after every ledger write in the same transaction, so
    the movement and the snapshot it produces commit together.

Invariants enforced:
    - available == ledger sum of non-voided movements after every recompute.
    - in_transit == outstanding quantity on CONFIRMED / PARTIALLY_RECEIVED
      order lines for the product.
    - state, needs_reorder and below_minimum always match
      ``derive_inventory_state`` for the stored fields.
    - 0 <= minimum, 0 <= reorder_point, minimum <= maximum when set.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.catalog import ReferenceCatalog
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import SnapshotView
from stock_kernel.domain.inventory_state import (
    DEFAULT_OBSOLETE_AFTER_DAYS,
    days_between,
    derive_inventory_state,
)
from stock_kernel.exceptions import InvalidThresholdError, ProductNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.snapshot import InventorySnapshotModel
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.base import BaseService

logger = get_logger("services.snapshot")


class InventoryStateAggregator(BaseService):
    """
    Snapshot maintenance.

    The snapshot row is created on first touch with thresholds seeded from
    the catalog's product record.
    """

    def __init__(
        self,
        session: Session,
        catalog: ReferenceCatalog,
        clock: Clock | None = None,
        obsolete_after_days: int = DEFAULT_OBSOLETE_AFTER_DAYS,
    ):
        super().__init__(session, clock)
        self._catalog = catalog
        self._obsolete_after_days = obsolete_after_days
        self._movements = MovementSelector(session)
        self._inventory = InventorySelector(session)

    def _locked_snapshot(self, product_id: UUID, actor_id: UUID) -> InventorySnapshotModel:
        model = self.session.execute(
            select(InventorySnapshotModel)
            .where(InventorySnapshotModel.product_id == product_id)
            .with_for_update()
        ).scalar_one_or_none()
        if model is not None:
            return model

        product = self._catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        model = InventorySnapshotModel(
            product_id=product_id,
            available=0,
            reserved=0,
            in_transit=0,
            minimum=product.minimum_stock,
            maximum=product.maximum_stock,
            reorder_point=product.reorder_point,
            location=product.location,
            blocked=False,
            created_by_id=actor_id,
        )
        self.session.add(model)
        logger.debug("snapshot_created", extra={"product_id": str(product_id)})
        return model

    def _derive(self, model: InventorySnapshotModel) -> None:
        derived = derive_inventory_state(
            available=model.available,
            minimum=model.minimum,
            maximum=model.maximum,
            reorder_point=model.reorder_point,
            days_since_last_sale=model.days_since_last_sale,
            blocked=model.blocked,
            obsolete_after_days=self._obsolete_after_days,
        )
        model.state = derived.state.value
        model.needs_reorder = derived.needs_reorder
        model.below_minimum = derived.below_minimum

    def recompute(self, product_id: UUID, actor_id: UUID) -> SnapshotView:
        """
        Re-derive quantities, timestamps and state from the ledger.

        Raises:
            ProductNotFoundError: First touch of a product the catalog
                does not know.
        """
        model = self._locked_snapshot(product_id, actor_id)
        now = self.clock.now()

        model.available = self._movements.ledger_balance(product_id)
        model.in_transit = self._inventory.in_transit_quantity(product_id)
        model.last_movement_at = self._movements.last_movement_at(product_id)

        last_sale = self._movements.last_sale_at(product_id)
        if last_sale is None:
            last_sale = self._movements.first_movement_at(product_id)
        model.days_since_last_sale = days_between(last_sale, now)

        model.last_recomputed_at = now
        model.updated_by_id = actor_id
        self._derive(model)
        self.session.flush()

        logger.info(
            "snapshot_recomputed",
            extra={
                "product_id": str(product_id),
                "available": model.available,
                "in_transit": model.in_transit,
                "state": model.state,
                "needs_reorder": model.needs_reorder,
            },
        )
        return model.to_dto()

    def update_thresholds(
        self,
        product_id: UUID,
        actor_id: UUID,
        minimum: int | None = None,
        maximum: int | None = None,
        reorder_point: int | None = None,
        location: str | None = None,
        clear_maximum: bool = False,
    ) -> SnapshotView:
        """
        Edit the configuration fields and re-derive state.

        Raises:
            InvalidThresholdError: Negative values or maximum < minimum.
        """
        model = self._locked_snapshot(product_id, actor_id)

        new_minimum = model.minimum if minimum is None else minimum
        new_reorder = model.reorder_point if reorder_point is None else reorder_point
        if clear_maximum:
            new_maximum = None
        else:
            new_maximum = model.maximum if maximum is None else maximum

        if new_minimum < 0:
            raise InvalidThresholdError(product_id, "minimum cannot be negative")
        if new_reorder < 0:
            raise InvalidThresholdError(product_id, "reorder point cannot be negative")
        if new_maximum is not None:
            if new_maximum < 0:
                raise InvalidThresholdError(product_id, "maximum cannot be negative")
            if new_maximum < new_minimum:
                raise InvalidThresholdError(
                    product_id,
                    f"maximum {new_maximum} is below minimum {new_minimum}",
                )

        model.minimum = new_minimum
        model.maximum = new_maximum
        model.reorder_point = new_reorder
        if location is not None:
            model.location = location
        model.updated_by_id = actor_id
        self._derive(model)
        self.session.flush()

        logger.info(
            "snapshot_thresholds_updated",
            extra={
                "product_id": str(product_id),
                "minimum": new_minimum,
                "maximum": new_maximum,
                "reorder_point": new_reorder,
                "state": model.state,
            },
        )
        return model.to_dto()

    def set_blocked(
        self,
        product_id: UUID,
        blocked: bool,
        actor_id: UUID,
        reason: str | None = None,
    ) -> SnapshotView:
        """Set or clear the administrative block; BLOCKED wins over every other state."""
        model = self._locked_snapshot(product_id, actor_id)
        model.blocked = blocked
        model.block_reason = reason if blocked else None
        model.updated_by_id = actor_id
        self._derive(model)
        self.session.flush()

        logger.info(
            "snapshot_block_changed",
            extra={"product_id": str(product_id), "blocked": blocked, "state": model.state},
        )
        return model.to_dto()

    def get_snapshot(self, product_id: UUID) -> SnapshotView:
        return self._inventory.get_snapshot(product_id)

