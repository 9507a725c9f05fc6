"""
AlertEngine -- threshold alerts and their operator lifecycle.

Responsibility:
    Compares a product's snapshot (and its latest optimization result)
    against the alert rule table and opens alerts, and moves alerts through
    ``ALERT_WORKFLOW`` on operator or system action.

Architecture position:
    Kernel > Services -- imperative shell.
    Evaluation runs as a post-commit subscriber after every recompute and
    after every new optimization result.  Transitions are called by the
    ReplenishmentEngine facade and by PurchaseOrderWorkflow (claim on order
    generation, auto-resolve on receipt).

Rule table (``evaluate``):

    available <= 0                    -> CRITICAL_STOCK / CRITICAL
    below_minimum                     -> LOW_STOCK      / HIGH
    available <= effective ROP        -> REORDER_POINT  / MEDIUM
    maximum set, available >= maximum -> OVERSTOCK      / LOW
    days_since_last_sale > threshold  -> OBSOLETE       / LOW

    Effective ROP is the latest optimization result's reorder point, else the
    snapshot's configured reorder point.  Only ``available`` is compared;
    reserved stock never counts toward coverage.

Invariants enforced:
    - At most one non-terminal alert per (product, type).  Re-evaluation
      leaves an existing open alert untouched.
    - RESOLVED and IGNORED are terminal; any action on them raises
      AlertAlreadyClosedError.
    - All state changes resolve through ALERT_WORKFLOW.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import (
    AlertFilter,
    AlertStatistics,
    AlertTransitionFailure,
    AlertView,
    BulkTransitionResult,
    SnapshotView,
)
from stock_kernel.domain.inventory_state import DEFAULT_OBSOLETE_AFTER_DAYS
from stock_kernel.domain.lifecycles import ALERT_WORKFLOW
from stock_kernel.domain.types import (
    OPEN_ALERT_STATES,
    SHORTAGE_ALERT_TYPES,
    AlertAction,
    AlertSeverity,
    AlertState,
    AlertType,
)
from stock_kernel.exceptions import (
    AlertAlreadyClosedError,
    AlertNotFoundError,
    InvalidAlertTransitionError,
    InvalidParametersError,
    StockKernelError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.alert import AlertModel
from stock_kernel.selectors.alert_selector import AlertSelector
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.optimization_selector import OptimizationSelector
from stock_kernel.services.base import BaseService

logger = get_logger("services.alert")

DEFAULT_EXPIRY_WARNING_DAYS = 30

_CLOSED_VALUES = (AlertState.RESOLVED.value, AlertState.IGNORED.value)


def parse_action(action: AlertAction | str) -> AlertAction:
    try:
        return AlertAction(action)
    except ValueError:
        raise InvalidParametersError("action", f"unknown alert action {action!r}") from None


class AlertEngine(BaseService):

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        obsolete_after_days: int = DEFAULT_OBSOLETE_AFTER_DAYS,
        expiry_warning_days: int = DEFAULT_EXPIRY_WARNING_DAYS,
    ):
        super().__init__(session, clock)
        self._obsolete_after_days = obsolete_after_days
        self._expiry_warning_days = expiry_warning_days
        self._alerts = AlertSelector(session)
        self._inventory = InventorySelector(session)
        self._movements = MovementSelector(session)
        self._optimizations = OptimizationSelector(session)

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def _open(
        self,
        product_id: UUID,
        alert_type: AlertType,
        severity: AlertSeverity,
        message: str,
        actor_id: UUID,
    ) -> AlertView | None:
        if self._alerts.find_open(product_id, alert_type) is not None:
            return None

        model = AlertModel(
            product_id=product_id,
            alert_type=alert_type.value,
            severity=severity.value,
            state=AlertState.PENDING.value,
            message=message,
            triggered_at=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "alert_opened",
            extra={
                "alert_id": str(model.id),
                "product_id": str(product_id),
                "alert_type": alert_type.value,
                "severity": severity.value,
            },
        )
        return model.to_dto()

    def effective_reorder_point(self, snapshot: SnapshotView) -> Decimal:
        latest = self._optimizations.latest_for_product(snapshot.product_id)
        if latest is not None:
            return latest.reorder_point
        return Decimal(snapshot.reorder_point)

    def _conditions(self, snapshot: SnapshotView) -> list[tuple[AlertType, AlertSeverity, str]]:
        available = snapshot.available
        rop = self.effective_reorder_point(snapshot)
        found = []
        if available <= 0:
            found.append((
                AlertType.CRITICAL_STOCK, AlertSeverity.CRITICAL,
                f"Out of stock (available {available})",
            ))
        if snapshot.below_minimum:
            found.append((
                AlertType.LOW_STOCK, AlertSeverity.HIGH,
                f"Available {available} is below minimum {snapshot.minimum}",
            ))
        if available <= rop:
            found.append((
                AlertType.REORDER_POINT, AlertSeverity.MEDIUM,
                f"Available {available} is at or below reorder point {rop}",
            ))
        if snapshot.maximum is not None and available >= snapshot.maximum:
            found.append((
                AlertType.OVERSTOCK, AlertSeverity.LOW,
                f"Available {available} is at or above maximum {snapshot.maximum}",
            ))
        days = snapshot.days_since_last_sale
        if days is not None and days > self._obsolete_after_days:
            found.append((
                AlertType.OBSOLETE, AlertSeverity.LOW,
                f"No sale for {days} days",
            ))
        return found

    def evaluate(self, product_id: UUID, actor_id: UUID) -> list[AlertView]:
        """
        Apply the rule table to the product's current snapshot.

        Returns:
            Alerts opened by this evaluation (empty when every matching
            condition already has an open alert, or no snapshot exists).
        """
        snapshot = self._inventory.find_snapshot(product_id)
        if snapshot is None:
            return []

        opened = []
        for alert_type, severity, message in self._conditions(snapshot):
            alert = self._open(product_id, alert_type, severity, message, actor_id)
            if alert is not None:
                opened.append(alert)
        return opened

    def evaluate_expiry(
        self,
        product_id: UUID,
        actor_id: UUID,
        as_of: date | None = None,
    ) -> list[AlertView]:
        """
        Open EXPIRED / EXPIRY_SOON alerts for inbound lots of a product
        that still has stock.
        """
        as_of = as_of or self.clock.today()
        snapshot = self._inventory.find_snapshot(product_id)
        if snapshot is None or snapshot.available <= 0:
            return []

        lots = self._movements.lots_expiring(
            product_id, as_of + timedelta(days=self._expiry_warning_days)
        )
        expired = [(lot, day) for lot, day in lots if day < as_of]
        expiring = [(lot, day) for lot, day in lots if day >= as_of]

        opened = []
        if expired:
            lot, day = expired[0]
            alert = self._open(
                product_id, AlertType.EXPIRED, AlertSeverity.HIGH,
                f"{len(expired)} lot(s) expired, earliest {lot or '-'} on {day.isoformat()}",
                actor_id,
            )
            if alert is not None:
                opened.append(alert)
        if expiring:
            lot, day = expiring[0]
            alert = self._open(
                product_id, AlertType.EXPIRY_SOON, AlertSeverity.MEDIUM,
                f"{len(expiring)} lot(s) expire within {self._expiry_warning_days} days, "
                f"next {lot or '-'} on {day.isoformat()}",
                actor_id,
            )
            if alert is not None:
                opened.append(alert)
        return opened

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def transition(
        self,
        alert_id: UUID,
        action: AlertAction | str,
        actor_id: UUID,
        note: str | None = None,
        assignee_id: UUID | None = None,
        system: bool = False,
    ) -> AlertView:
        """
        Apply ``action`` to an alert.

        Raises:
            InvalidParametersError: Unknown action name.
            AlertNotFoundError: No such alert.
            AlertAlreadyClosedError: Alert is RESOLVED or IGNORED.
            InvalidAlertTransitionError: Action not allowed from the state.
        """
        action = parse_action(action)
        model = self.session.execute(
            select(AlertModel)
            .where(AlertModel.id == alert_id)
            .with_for_update()
        ).scalar_one_or_none()
        if model is None:
            raise AlertNotFoundError(alert_id)

        from_state = model.state
        if ALERT_WORKFLOW.is_terminal(from_state):
            raise AlertAlreadyClosedError(alert_id, from_state)

        transition = ALERT_WORKFLOW.transition_for(
            from_state, action.value, include_system=system,
        )
        if transition is None:
            raise InvalidAlertTransitionError(alert_id, from_state, action.value)

        now = self.clock.now()
        model.state = transition.to_state
        if action == AlertAction.CLAIM:
            model.assignee_id = assignee_id or actor_id
        elif assignee_id is not None:
            model.assignee_id = assignee_id
        if note is not None:
            model.resolution_note = note
        if ALERT_WORKFLOW.is_terminal(transition.to_state):
            model.closed_by_id = actor_id
            if transition.to_state == AlertState.RESOLVED.value:
                model.resolved_at = now
        model.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "alert_transitioned",
            extra={
                "alert_id": str(alert_id),
                "product_id": str(model.product_id),
                "action": action.value,
                "from_state": from_state,
                "to_state": transition.to_state,
            },
        )
        return model.to_dto()

    def transition_many(
        self,
        alert_ids: Iterable[UUID],
        action: AlertAction | str,
        actor_id: UUID,
        note: str | None = None,
        assignee_id: UUID | None = None,
    ) -> BulkTransitionResult:
        """
        Apply one action to many alerts.  Each alert runs in its own
        SAVEPOINT; a refused alert is reported and the rest proceed.
        """
        action = parse_action(action)
        done: list[AlertView] = []
        failures: list[AlertTransitionFailure] = []
        for alert_id in alert_ids:
            try:
                with self.session.begin_nested():
                    done.append(
                        self.transition(alert_id, action, actor_id, note, assignee_id)
                    )
            except StockKernelError as exc:
                failures.append(AlertTransitionFailure(alert_id, exc.code, str(exc)))

        logger.info(
            "alerts_bulk_transitioned",
            extra={
                "action": action.value,
                "transitioned": len(done),
                "failed": len(failures),
            },
        )
        return BulkTransitionResult(transitioned=tuple(done), failures=tuple(failures))

    def auto_resolve_for_product(
        self,
        product_id: UUID,
        actor_id: UUID,
        types: Iterable[AlertType] = SHORTAGE_ALERT_TYPES,
        note: str | None = None,
    ) -> list[AlertView]:
        """Resolve every open alert of the given types for a product (system action)."""
        type_values = [t.value for t in types]
        ids = list(self.session.scalars(
            select(AlertModel.id)
            .where(AlertModel.product_id == product_id)
            .where(AlertModel.alert_type.in_(type_values))
            .where(AlertModel.state.in_([s.value for s in OPEN_ALERT_STATES]))
            .order_by(AlertModel.triggered_at)
        ))
        return [
            self.transition(
                alert_id, AlertAction.AUTO_RESOLVE, actor_id, note=note, system=True,
            )
            for alert_id in ids
        ]

    # -------------------------------------------------------------------------
    # Queries and maintenance
    # -------------------------------------------------------------------------

    def list_alerts(self, criteria: AlertFilter | None = None) -> list[AlertView]:
        return self._alerts.list_alerts(criteria)

    def alert_statistics(self) -> AlertStatistics:
        return self._alerts.statistics()

    def closed_alert_ids(self, older_than: datetime) -> list[UUID]:
        """Terminal alerts triggered before ``older_than``, oldest first."""
        return list(self.session.scalars(
            select(AlertModel.id)
            .where(AlertModel.state.in_(_CLOSED_VALUES))
            .where(AlertModel.triggered_at < older_than)
            .order_by(AlertModel.triggered_at)
        ))

    def purge_closed(
        self,
        older_than: datetime,
        alert_ids: Iterable[UUID] | None = None,
    ) -> int:
        """
        Delete terminal alerts triggered before ``older_than``.

        Open alerts are never deleted, even when listed in ``alert_ids``.
        Returns the number of rows removed.
        """
        stmt = (
            delete(AlertModel)
            .where(AlertModel.state.in_(_CLOSED_VALUES))
            .where(AlertModel.triggered_at < older_than)
            .execution_options(synchronize_session=False)
        )
        if alert_ids is not None:
            stmt = stmt.where(AlertModel.id.in_(list(alert_ids)))
        removed = self.session.execute(stmt).rowcount
        self.session.flush()
        logger.info(
            "closed_alerts_purged",
            extra={"older_than": older_than, "removed": removed},
        )
        return removed
