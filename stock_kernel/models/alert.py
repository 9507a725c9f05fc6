"""
Module: stock_kernel.models.alert
Responsibility: Inventory alerts and their lifecycle fields.

Created only by the alert engine; state changes only through
ALERT_WORKFLOW.  RESOLVED and IGNORED rows are terminal.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class AlertModel(TrackedBase):
    """Maps to: stock_kernel.domain.dtos.AlertView."""

    __tablename__ = "inventory_alerts"

    __table_args__ = (
        Index("idx_alert_product_type_state", "product_id", "alert_type", "state"),
        Index("idx_alert_state", "state"),
        Index("idx_alert_triggered", "triggered_at"),
    )

    product_id: Mapped[UUID] = mapped_column()
    alert_type: Mapped[str] = mapped_column(String(50))
    severity: Mapped[str] = mapped_column(String(50))
    state: Mapped[str] = mapped_column(String(50), default="pending")
    message: Mapped[str] = mapped_column(Text, default="")
    triggered_at: Mapped[datetime] = mapped_column()

    assignee_id: Mapped[UUID | None] = mapped_column(nullable=True)
    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def to_dto(self):
        from stock_kernel.domain.clock import ensure_utc
        from stock_kernel.domain.dtos import AlertView
        from stock_kernel.domain.types import AlertSeverity, AlertState, AlertType

        return AlertView(
            alert_id=self.id,
            product_id=self.product_id,
            alert_type=AlertType(self.alert_type),
            severity=AlertSeverity(self.severity),
            state=AlertState(self.state),
            message=self.message or "",
            triggered_at=ensure_utc(self.triggered_at),
            assignee_id=self.assignee_id,
            resolution_note=self.resolution_note,
            resolved_at=ensure_utc(self.resolved_at),
            closed_by_id=self.closed_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<AlertModel {self.id} product={self.product_id} "
            f"{self.alert_type}/{self.severity} state={self.state}>"
        )
