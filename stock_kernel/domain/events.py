"""
Ledger events (``stock_kernel.domain.events``).

``MovementCommitted`` is staged by the ledger inside a transaction and only
handed to subscribers once that transaction has committed.  ``EventOutbox``
is the per-unit-of-work staging area: the owner of the transaction drains it
after commit and discards it on rollback, so a rolled-back movement never
reaches a subscriber.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from stock_kernel.domain.types import MovementKind


@dataclass(frozen=True)
class MovementCommitted:
    """A movement was appended (``voided=False``) or voided (``voided=True``)."""
    movement_id: UUID
    product_id: UUID
    kind: MovementKind
    quantity: int
    occurred_at: datetime
    voided: bool = False

    @property
    def is_sale(self) -> bool:
        return self.kind.is_sale

    @property
    def movement_date(self) -> date:
        return self.occurred_at.date()


class EventOutbox:
    """Collects events staged during one transaction."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: list[MovementCommitted] = []

    def stage(self, event: MovementCommitted) -> None:
        with self._lock:
            self._pending.append(event)

    def drain(self) -> list[MovementCommitted]:
        """Return and clear staged events, in staging order."""
        with self._lock:
            events, self._pending = self._pending, []
        return events

    def discard(self) -> int:
        """Drop staged events (transaction rolled back).  Returns how many."""
        with self._lock:
            dropped = len(self._pending)
            self._pending = []
        return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
