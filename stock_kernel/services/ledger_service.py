"""
MovementLedger -- append-only stock movement ledger.

Responsibility:
    Validates and appends stock movements, assigns their ledger sequence and
    running balance, and voids movements without deleting them.  Every
    successful write stages a ``MovementCommitted`` event in the unit of
    work's outbox.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by ReplenishmentEngine (operator movements) and by
    PurchaseOrderWorkflow (receipts).  The inventory state aggregator is
    re-run by the caller in the same transaction.

Invariants enforced:
    - quantity is a positive integer; its sign comes from the kind.
    - The previous balance is the SQL sum of non-voided movements, read
      while the product's snapshot row is locked.
    - Out-movements never drive the balance negative unless backorder mode
      (``allow_negative_balance``) is enabled.  Voiding an in-movement is
      held to the same rule.
    - Voiding sets the void fields on the original row.  No compensating
      row is written and no running balance is rewritten.
    - Flush-only: never commits or rolls back.

Failure modes:
    - InvalidMovementError: bad quantity, kind, unit cost or missing supplier.
    - InsufficientStockError: out-movement or void would go below zero.
    - ProductNotFoundError / SupplierNotFoundError: unknown reference.
    - MovementNotFoundError / AlreadyVoidedError: void target invalid.

Audit relevance:
    Each append and void logs ``movement_appended`` / ``movement_voided``
    with product, kind, quantity, sequence and resulting balance.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.catalog import ReferenceCatalog
from stock_kernel.domain.clock import Clock, ensure_utc
from stock_kernel.domain.dtos import MovementDraft, MovementRecord
from stock_kernel.domain.events import EventOutbox, MovementCommitted
from stock_kernel.domain.types import MovementKind
from stock_kernel.exceptions import (
    AlreadyVoidedError,
    InsufficientStockError,
    InvalidMovementError,
    MovementNotFoundError,
    ProductNotFoundError,
    SupplierNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.movement import MovementModel
from stock_kernel.models.snapshot import InventorySnapshotModel
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")


class MovementLedger(BaseService):
    """
    Write side of the movement ledger.

    Contract:
        ``append`` and ``void`` return frozen ``MovementRecord`` DTOs and
        stage exactly one ``MovementCommitted`` per call.  Validation runs
        before any row is written.

    Non-goals:
        - Does NOT update the inventory snapshot (InventoryStateAggregator).
        - Does NOT publish events; the unit-of-work owner drains the outbox
          after commit.
    """

    def __init__(
        self,
        session: Session,
        catalog: ReferenceCatalog,
        outbox: EventOutbox,
        clock: Clock | None = None,
        allow_negative_balance: bool = False,
    ):
        super().__init__(session, clock)
        self._catalog = catalog
        self._outbox = outbox
        self._allow_negative = allow_negative_balance
        self._movements = MovementSelector(session)
        self._sequences = SequenceService(session)

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _validate(self, draft: MovementDraft) -> MovementKind:
        try:
            kind = MovementKind(draft.kind)
        except ValueError:
            raise InvalidMovementError(
                f"unknown movement kind {draft.kind!r}", product_id=draft.product_id,
            ) from None

        quantity = draft.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidMovementError(
                f"quantity must be an integer, got {quantity!r}",
                product_id=draft.product_id,
            )
        if quantity <= 0:
            raise InvalidMovementError(
                f"quantity must be positive, got {quantity}",
                product_id=draft.product_id,
            )

        product = self._catalog.get_product(draft.product_id)
        if product is None:
            raise ProductNotFoundError(draft.product_id)
        if not product.is_active:
            raise InvalidMovementError(
                "product is inactive", product_id=draft.product_id,
            )

        if draft.unit_cost is not None and draft.unit_cost < 0:
            raise InvalidMovementError(
                f"unit cost cannot be negative, got {draft.unit_cost}",
                product_id=draft.product_id,
            )

        if kind.requires_supplier:
            if draft.supplier_id is None:
                raise InvalidMovementError(
                    f"{kind.value} requires a supplier", product_id=draft.product_id,
                )
            if self._catalog.get_supplier(draft.supplier_id) is None:
                raise SupplierNotFoundError(draft.supplier_id)
        elif draft.supplier_id is not None and self._catalog.get_supplier(draft.supplier_id) is None:
            raise SupplierNotFoundError(draft.supplier_id)

        return kind

    def _lock_snapshot_row(self, product_id: UUID) -> None:
        # The snapshot row is the per-product lock anchor.  It may not exist
        # yet on first touch; the caller's in-process product lock covers that.
        self.session.execute(
            select(InventorySnapshotModel.id)
            .where(InventorySnapshotModel.product_id == product_id)
            .with_for_update()
        ).scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def append(self, draft: MovementDraft, actor_id: UUID) -> MovementRecord:
        """
        Validate and append one movement.

        Returns:
            The stored movement with its sequence and running balance.

        Raises:
            InvalidMovementError, InsufficientStockError,
            ProductNotFoundError, SupplierNotFoundError.
        """
        kind = self._validate(draft)
        self._lock_snapshot_row(draft.product_id)

        previous = self._movements.ledger_balance(draft.product_id)
        balance = previous + kind.signed(draft.quantity)
        if balance < 0 and not self._allow_negative:
            logger.warning(
                "movement_rejected_insufficient_stock",
                extra={
                    "product_id": str(draft.product_id),
                    "kind": kind.value,
                    "available": previous,
                    "requested": draft.quantity,
                },
            )
            raise InsufficientStockError(draft.product_id, previous, draft.quantity)

        occurred_at = ensure_utc(draft.occurred_at) or self.clock.now()
        sequence = self._sequences.next_value(SequenceService.MOVEMENT)

        model = MovementModel(
            product_id=draft.product_id,
            sequence=sequence,
            occurred_at=occurred_at,
            kind=kind.value,
            quantity=draft.quantity,
            running_balance=balance,
            unit_cost=draft.unit_cost,
            lot_number=draft.lot_number,
            expiry_date=draft.expiry_date,
            supplier_id=draft.supplier_id,
            reason=draft.reason or "",
            reference=draft.reference,
            created_by_id=actor_id,
        )
        self.session.add(model)
        self.session.flush()

        self._outbox.stage(MovementCommitted(
            movement_id=model.id,
            product_id=draft.product_id,
            kind=kind,
            quantity=draft.quantity,
            occurred_at=occurred_at,
        ))

        logger.info(
            "movement_appended",
            extra={
                "movement_id": str(model.id),
                "product_id": str(draft.product_id),
                "kind": kind.value,
                "quantity": draft.quantity,
                "sequence": sequence,
                "running_balance": balance,
            },
        )
        return model.to_dto()

    def void(
        self,
        movement_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> MovementRecord:
        """
        Mark a movement voided.  Its quantity stops counting toward the
        live balance.

        Raises:
            MovementNotFoundError, AlreadyVoidedError, InsufficientStockError.
        """
        model = self.session.execute(
            select(MovementModel)
            .where(MovementModel.id == movement_id)
        ).scalar_one_or_none()
        if model is None:
            raise MovementNotFoundError(movement_id)
        if model.voided:
            raise AlreadyVoidedError(movement_id)

        self._lock_snapshot_row(model.product_id)
        kind = MovementKind(model.kind)

        if kind.is_inbound and not self._allow_negative:
            current = self._movements.ledger_balance(model.product_id)
            if current - model.quantity < 0:
                raise InsufficientStockError(model.product_id, current, model.quantity)

        now = self.clock.now()
        model.voided = True
        model.voided_at = now
        model.voided_by_id = actor_id
        model.void_reason = reason
        model.updated_by_id = actor_id
        self.session.flush()

        self._outbox.stage(MovementCommitted(
            movement_id=model.id,
            product_id=model.product_id,
            kind=kind,
            quantity=model.quantity,
            occurred_at=ensure_utc(model.occurred_at),
            voided=True,
        ))

        logger.info(
            "movement_voided",
            extra={
                "movement_id": str(model.id),
                "product_id": str(model.product_id),
                "kind": kind.value,
                "quantity": model.quantity,
                "sequence": model.sequence,
            },
        )
        return model.to_dto()
