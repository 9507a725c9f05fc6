"""
Module: stock_kernel.models.movement
Responsibility: ORM model for the append-only stock movement ledger.
Architecture position: Kernel > Models.  Inherits TrackedBase.  Product and
    supplier references are plain UUID columns (master data is external, no FK).

Invariants enforced:
    - quantity is a positive integer; direction comes from ``kind``.
    - ``sequence`` is unique and strictly increasing in append order.
    - Only the void fields (and audit metadata) may change after insert, and
      ``voided`` only false -> true (db/immutability.py).  Rows are never deleted.

Audit relevance:
    running_balance records the balance as of append time.  A later void does
    not rewrite it; the live balance lives on the inventory snapshot.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase

MOVEMENT_MUTABLE_FIELDS = frozenset({
    "voided",
    "voided_at",
    "voided_by_id",
    "void_reason",
    "updated_at",
    "updated_by_id",
})


class MovementModel(TrackedBase):
    """
    One stock-affecting event.

    Maps to: stock_kernel.domain.dtos.MovementRecord.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_movement_product_seq", "product_id", "sequence"),
        Index("idx_movement_product_kind", "product_id", "kind"),
        Index("idx_movement_occurred", "occurred_at"),
        Index("idx_movement_sequence", "sequence", unique=True),
    )

    product_id: Mapped[UUID] = mapped_column()
    sequence: Mapped[int] = mapped_column()
    occurred_at: Mapped[datetime] = mapped_column()

    # MovementKind enum stored as string
    kind: Mapped[str] = mapped_column(String(50))
    quantity: Mapped[int] = mapped_column()
    running_balance: Mapped[int] = mapped_column()

    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    lot_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    supplier_id: Mapped[UUID | None] = mapped_column(nullable=True)

    reason: Mapped[str] = mapped_column(Text, default="")
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    voided: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        """Convert ORM model to frozen MovementRecord DTO."""
        from stock_kernel.domain.clock import ensure_utc
        from stock_kernel.domain.dtos import MovementRecord
        from stock_kernel.domain.types import MovementKind

        return MovementRecord(
            movement_id=self.id,
            product_id=self.product_id,
            sequence=self.sequence,
            occurred_at=ensure_utc(self.occurred_at),
            kind=MovementKind(self.kind),
            quantity=self.quantity,
            running_balance=self.running_balance,
            actor_id=self.created_by_id,
            unit_cost=self.unit_cost,
            lot_number=self.lot_number,
            expiry_date=self.expiry_date,
            supplier_id=self.supplier_id,
            reason=self.reason or "",
            reference=self.reference,
            voided=self.voided,
            voided_at=ensure_utc(self.voided_at),
            voided_by_id=self.voided_by_id,
            void_reason=self.void_reason,
        )

    def __repr__(self) -> str:
        return (
            f"<MovementModel #{self.sequence} product={self.product_id} "
            f"{self.kind} qty={self.quantity} voided={self.voided}>"
        )
