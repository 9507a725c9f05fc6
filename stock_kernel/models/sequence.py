"""
Module: stock_kernel.models.sequence
Responsibility: Named counters backing monotonic sequence allocation.

Each row is one sequence (``movement``, ``purchase_order``).  The row is
locked with SELECT ... FOR UPDATE while its value is incremented, so values
are unique and increasing under concurrency.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class SequenceCounter(Base):
    """Sequence counter table."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
