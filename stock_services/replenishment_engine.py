"""
stock_services.replenishment_engine -- public facade of the engine.

Responsibility:
    The single entry point external collaborators call.  Every operation
    runs in its own unit of work (session -> commit or rollback -> close),
    wires the kernel services for that session, and publishes the ledger
    events staged during the unit of work only once it has committed.

Architecture position:
    Services -- stateful orchestration over the kernel.  This is the only
    place that opens sessions for request-style operations and the only
    publisher on the event bus.

Invariants enforced:
    - A movement and the snapshot recompute it triggers commit together.
    - Staged events are published after commit and discarded on rollback,
      so a rolled-back movement never reaches a subscriber.
    - Same-product writers serialize through ProductLockRegistry (held for
      the whole unit of work) plus the snapshot row lock.
    - Subscribers (sale normalization, alert evaluation) each run in their
      own unit of work holding the product's lock.  Their failures never
      reach the caller of the write that triggered them; they are logged
      and persisted for redelivery, so every committed event reaches every
      subscriber at least once.

Usage:
    engine = ReplenishmentEngine.from_settings(get_active_settings(), catalog)
    record = engine.append_movement(
        MovementDraft(product_id, MovementKind.SALE_OUT, 5), actor_id,
    )
    snapshot = engine.get_snapshot(product_id)
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import date
from uuid import UUID

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stock_config.schema import EngineSettings
from stock_kernel.db.engine import build_engine, session_scope
from stock_kernel.domain.catalog import ReferenceCatalog
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    AlertFilter,
    AlertStatistics,
    AlertView,
    BulkTransitionResult,
    MovementDraft,
    MovementRecord,
    NormalizationSummary,
    OptimizationOutcome,
    OptimizationParameters,
    PendingDelivery,
    PurchaseOrderView,
    ReceiptLine,
    ReceiptOutcome,
    SnapshotView,
)
from stock_kernel.domain.events import EventOutbox, MovementCommitted
from stock_kernel.domain.types import SYSTEM_ACTOR_ID, AlertAction, OrderPolicy
from stock_kernel.exceptions import InvalidParametersError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.alert_selector import AlertSelector
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.optimization_selector import OptimizationSelector
from stock_kernel.selectors.order_selector import PurchaseOrderSelector
from stock_kernel.services.alert_service import AlertEngine
from stock_kernel.services.delivery_service import DeliveryRetryQueue
from stock_kernel.services.demand_service import DemandNormalizer
from stock_kernel.services.ledger_service import MovementLedger
from stock_kernel.services.optimization_service import OptimizationCalculator
from stock_kernel.services.product_locks import ProductLockRegistry
from stock_kernel.services.purchase_order_service import PurchaseOrderWorkflow
from stock_kernel.services.snapshot_service import InventoryStateAggregator
from stock_services.event_dispatch import DeliveryFailure, EventBus

logger = get_logger("services.engine")

SALE_NORMALIZATION_SUBSCRIBER = "sale_demand_normalization"
ALERT_EVALUATION_SUBSCRIBER = "movement_alert_evaluation"


class EngineServices:
    """Kernel services wired for one session.

    Contract:
        Constructs every kernel service exactly once, in dependency order,
        sharing the session, clock and outbox.  Never commits.
    """

    def __init__(
        self,
        session: Session,
        catalog: ReferenceCatalog,
        settings: EngineSettings,
        clock: Clock,
        outbox: EventOutbox | None = None,
    ) -> None:
        self.session = session
        self.settings = settings
        self.outbox = outbox if outbox is not None else EventOutbox()

        # Ledger first; everything downstream reads what it writes.
        self.ledger = MovementLedger(
            session, catalog, self.outbox, clock,
            allow_negative_balance=settings.ledger.allow_negative_balance,
        )
        self.aggregator = InventoryStateAggregator(
            session, catalog, clock,
            obsolete_after_days=settings.inventory.obsolete_after_days,
        )
        self.normalizer = DemandNormalizer(session, catalog, clock)
        self.optimizer = OptimizationCalculator(
            session, catalog, clock,
            service_level_factor=settings.optimization.service_level_factor,
            demand_window_days=settings.optimization.demand_window_days,
            default_holding_cost_rate=settings.optimization.default_holding_cost_rate,
        )
        self.alerts = AlertEngine(
            session, clock,
            obsolete_after_days=settings.inventory.obsolete_after_days,
            expiry_warning_days=settings.alerts.expiry_warning_days,
        )
        self.orders = PurchaseOrderWorkflow(
            session, catalog, self.ledger, self.alerts, clock,
        )
        self.deliveries = DeliveryRetryQueue(session, clock)

        # Read side
        self.movements = MovementSelector(session)
        self.inventory = InventorySelector(session)
        self.optimizations = OptimizationSelector(session)
        self.alert_reads = AlertSelector(session)
        self.order_reads = PurchaseOrderSelector(session)

    def deliver(self, subscriber: str, event: MovementCommitted) -> None:
        """Run one subscriber's work for a committed event in this session."""
        if subscriber == SALE_NORMALIZATION_SUBSCRIBER:
            self.normalizer.normalize(
                event.product_id,
                self.settings.demand.listener_window_days,
                as_of=event.movement_date,
            )
        elif subscriber == ALERT_EVALUATION_SUBSCRIBER:
            self.alerts.evaluate(event.product_id, SYSTEM_ACTOR_ID)
        else:
            raise InvalidParametersError("subscriber", f"unknown subscriber {subscriber!r}")


class ReplenishmentEngine:
    """Transaction-owning facade over the kernel services.

    Non-goals:
        - Does NOT run background jobs (stock_batch owns the worker pool).
        - Does NOT serialize to any wire format.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        catalog: ReferenceCatalog,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        locks: ProductLockRegistry | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._catalog = catalog
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._locks = locks or ProductLockRegistry()
        self._bus = bus or EventBus()

        self._bus.subscribe(
            SALE_NORMALIZATION_SUBSCRIBER,
            self._normalize_sale_day,
            accepts=lambda event: event.is_sale,
        )
        self._bus.subscribe(ALERT_EVALUATION_SUBSCRIBER, self._evaluate_after_movement)

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        catalog: ReferenceCatalog,
        clock: Clock | None = None,
        engine: Engine | None = None,
    ) -> ReplenishmentEngine:
        """Build a facade with its own SQLAlchemy engine from settings."""
        engine = engine or build_engine(settings.database_url)
        factory = sessionmaker(bind=engine, expire_on_commit=False)
        return cls(factory, catalog, settings=settings, clock=clock)

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def catalog(self) -> ReferenceCatalog:
        return self._catalog

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def locks(self) -> ProductLockRegistry:
        return self._locks

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    def services(self, session: Session, outbox: EventOutbox | None = None) -> EngineServices:
        return EngineServices(session, self._catalog, self._settings, self._clock, outbox)

    @contextmanager
    def unit_of_work(self, product_ids: Iterable[UUID] = ()) -> Iterator[EngineServices]:
        """
        One committed transaction, holding the given products' locks.

        Staged events are published after the locks are released, so
        subscribers can take the same locks.  Deliveries that fail are
        queued for the event redelivery task.
        """
        outbox = EventOutbox()
        try:
            with self._locks.hold(product_ids):
                with session_scope(self._session_factory) as session:
                    yield self.services(session, outbox)
        except Exception:
            dropped = outbox.discard()
            if dropped:
                logger.debug("staged_events_discarded", extra={"count": dropped})
            raise
        failures = self._bus.publish_all(outbox.drain())
        if failures:
            self._queue_redelivery(failures)

    def _queue_redelivery(self, failures: Sequence[DeliveryFailure]) -> None:
        # The writer has committed; losing the queue row must not undo it.
        try:
            with session_scope(self._session_factory) as session:
                queue = DeliveryRetryQueue(session, self._clock)
                for failure in failures:
                    queue.record(
                        failure.subscriber, failure.event,
                        failure.error_type, failure.message,
                    )
        except Exception:
            logger.exception(
                "event_delivery_queue_failed",
                extra={"failed_deliveries": len(failures)},
            )

    @contextmanager
    def _read(self) -> Iterator[EngineServices]:
        session = self._session_factory()
        try:
            yield self.services(session)
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Subscribers
    # -------------------------------------------------------------------------

    def _normalize_sale_day(self, event: MovementCommitted) -> None:
        with LogContext.bind(product_id=event.product_id, movement_id=event.movement_id):
            with self.unit_of_work((event.product_id,)) as uow:
                uow.deliver(SALE_NORMALIZATION_SUBSCRIBER, event)

    def _evaluate_after_movement(self, event: MovementCommitted) -> None:
        with LogContext.bind(product_id=event.product_id, movement_id=event.movement_id):
            with self.unit_of_work((event.product_id,)) as uow:
                uow.deliver(ALERT_EVALUATION_SUBSCRIBER, event)

    def pending_deliveries(self, limit: int | None = None) -> list[PendingDelivery]:
        """Committed events still owed to a subscriber, oldest first."""
        with self._read() as reads:
            return reads.deliveries.pending(limit)

    def evaluate_alerts(self, product_id: UUID) -> list[AlertView]:
        """Run the alert rule table for one product in its own unit of work."""
        with self.unit_of_work((product_id,)) as uow:
            return uow.alerts.evaluate(product_id, SYSTEM_ACTOR_ID)

    def _evaluate_quietly(self, product_id: UUID) -> None:
        # The triggering write has committed; a failure here must not undo it.
        try:
            self.evaluate_alerts(product_id)
        except Exception:
            logger.exception(
                "alert_evaluation_failed", extra={"product_id": str(product_id)},
            )

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    def append_movement(self, draft: MovementDraft, actor_id: UUID) -> MovementRecord:
        with LogContext.bind(actor_id=actor_id, product_id=draft.product_id):
            with self.unit_of_work((draft.product_id,)) as uow:
                record = uow.ledger.append(draft, actor_id)
                uow.aggregator.recompute(draft.product_id, actor_id)
            return record

    def void_movement(
        self,
        movement_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> MovementRecord:
        with self._read() as reads:
            product_id = reads.movements.get(movement_id).product_id

        with LogContext.bind(actor_id=actor_id, product_id=product_id, movement_id=movement_id):
            with self.unit_of_work((product_id,)) as uow:
                record = uow.ledger.void(movement_id, actor_id, reason)
                uow.aggregator.recompute(product_id, actor_id)
            return record

    def list_movements(
        self,
        product_id: UUID,
        include_voided: bool = True,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        with self._read() as reads:
            return reads.movements.list_for_product(product_id, include_voided, limit)

    # -------------------------------------------------------------------------
    # Inventory state
    # -------------------------------------------------------------------------

    def get_snapshot(self, product_id: UUID) -> SnapshotView:
        with self._read() as reads:
            return reads.inventory.get_snapshot(product_id)

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
        with LogContext.bind(actor_id=actor_id, product_id=product_id):
            with self.unit_of_work((product_id,)) as uow:
                snapshot = uow.aggregator.update_thresholds(
                    product_id, actor_id,
                    minimum=minimum,
                    maximum=maximum,
                    reorder_point=reorder_point,
                    location=location,
                    clear_maximum=clear_maximum,
                )
            self._evaluate_quietly(product_id)
            return snapshot

    def set_blocked(
        self,
        product_id: UUID,
        blocked: bool,
        actor_id: UUID,
        reason: str | None = None,
    ) -> SnapshotView:
        with LogContext.bind(actor_id=actor_id, product_id=product_id):
            with self.unit_of_work((product_id,)) as uow:
                snapshot = uow.aggregator.set_blocked(product_id, blocked, actor_id, reason)
            return snapshot

    # -------------------------------------------------------------------------
    # Demand and optimization
    # -------------------------------------------------------------------------

    def normalize_all(
        self,
        window_days: int | None = None,
        as_of: date | None = None,
    ) -> NormalizationSummary:
        """Synchronous bulk normalization, one SAVEPOINT per product."""
        window = window_days if window_days is not None else self._settings.demand.bulk_window_days
        with LogContext.bind(job_name="normalize_all"):
            with self.unit_of_work() as uow:
                return uow.normalizer.normalize_all(window, as_of)

    def compute_optimization(
        self,
        product_id: UUID,
        params: OptimizationParameters | None,
        actor_id: UUID,
    ) -> OptimizationOutcome:
        with LogContext.bind(actor_id=actor_id, product_id=product_id):
            with self.unit_of_work() as uow:
                outcome = uow.optimizer.compute_optimization(
                    product_id, params or OptimizationParameters(), actor_id,
                )
            self._evaluate_quietly(product_id)
            return outcome

    def latest_optimization(self, product_id: UUID) -> OptimizationOutcome | None:
        with self._read() as reads:
            return reads.optimizations.latest_for_product(product_id)

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    def list_alerts(self, criteria: AlertFilter | None = None) -> list[AlertView]:
        with self._read() as reads:
            return reads.alert_reads.list_alerts(criteria)

    def get_alert(self, alert_id: UUID) -> AlertView:
        with self._read() as reads:
            return reads.alert_reads.get(alert_id)

    def transition_alert(
        self,
        alert_id: UUID,
        action: AlertAction | str,
        actor_id: UUID,
        note: str | None = None,
        assignee_id: UUID | None = None,
    ) -> AlertView:
        with LogContext.bind(actor_id=actor_id):
            with self.unit_of_work() as uow:
                return uow.alerts.transition(alert_id, action, actor_id, note, assignee_id)

    def transition_alerts(
        self,
        alert_ids: Iterable[UUID],
        action: AlertAction | str,
        actor_id: UUID,
        note: str | None = None,
        assignee_id: UUID | None = None,
    ) -> BulkTransitionResult:
        with LogContext.bind(actor_id=actor_id):
            with self.unit_of_work() as uow:
                return uow.alerts.transition_many(
                    list(alert_ids), action, actor_id, note, assignee_id,
                )

    def alert_statistics(self) -> AlertStatistics:
        with self._read() as reads:
            return reads.alert_reads.statistics()

    # -------------------------------------------------------------------------
    # Purchase orders
    # -------------------------------------------------------------------------

    def _order_product_ids(self, order_id: UUID) -> list[UUID]:
        with self._read() as reads:
            order = reads.order_reads.get(order_id)
        return sorted({line.product_id for line in order.lines}, key=str)

    def generate_purchase_order(
        self,
        optimization_result_id: UUID,
        actor_id: UUID,
        extra_quantity: int = 0,
        notes: str | None = None,
        policy: OrderPolicy = OrderPolicy.EOQ,
    ) -> PurchaseOrderView:
        with LogContext.bind(actor_id=actor_id):
            with self.unit_of_work() as uow:
                return uow.orders.generate_from_optimization(
                    optimization_result_id, actor_id,
                    extra_quantity=extra_quantity, notes=notes, policy=policy,
                )

    def generate_purchase_order_from_alert(
        self,
        alert_id: UUID,
        actor_id: UUID,
        extra_quantity: int = 0,
        notes: str | None = None,
        policy: OrderPolicy = OrderPolicy.EOQ,
    ) -> PurchaseOrderView:
        with LogContext.bind(actor_id=actor_id):
            with self.unit_of_work() as uow:
                return uow.orders.generate_from_alert(
                    alert_id, actor_id,
                    extra_quantity=extra_quantity, notes=notes, policy=policy,
                )

    def generate_purchase_orders_by_supplier(
        self,
        optimization_result_ids: Sequence[UUID],
        actor_id: UUID,
        notes: str | None = None,
        policy: OrderPolicy = OrderPolicy.EOQ,
    ) -> list[PurchaseOrderView]:
        """One DRAFT order per supplier, all created in one transaction."""
        with LogContext.bind(actor_id=actor_id):
            with self.unit_of_work() as uow:
                return uow.orders.generate_by_supplier(
                    list(optimization_result_ids), actor_id, notes=notes, policy=policy,
                )

    def confirm_purchase_order(self, order_id: UUID, actor_id: UUID) -> PurchaseOrderView:
        product_ids = self._order_product_ids(order_id)
        with LogContext.bind(actor_id=actor_id, order_id=order_id):
            with self.unit_of_work(product_ids) as uow:
                order = uow.orders.confirm(order_id, actor_id)
                for product_id in product_ids:
                    uow.aggregator.recompute(product_id, actor_id)
            return order

    def cancel_purchase_order(
        self,
        order_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PurchaseOrderView:
        product_ids = self._order_product_ids(order_id)
        with LogContext.bind(actor_id=actor_id, order_id=order_id):
            with self.unit_of_work(product_ids) as uow:
                order = uow.orders.cancel(order_id, actor_id, reason)
                for product_id in product_ids:
                    uow.aggregator.recompute(product_id, actor_id)
            return order

    def receive_purchase_order(
        self,
        order_id: UUID,
        lines: Sequence[ReceiptLine],
        actor_id: UUID,
    ) -> ReceiptOutcome:
        product_ids = self._order_product_ids(order_id)
        with LogContext.bind(actor_id=actor_id, order_id=order_id):
            with self.unit_of_work(product_ids) as uow:
                outcome = uow.orders.receive(order_id, lines, actor_id)
                for product_id in product_ids:
                    uow.aggregator.recompute(product_id, actor_id)
            return outcome

    def get_purchase_order(self, order_id: UUID) -> PurchaseOrderView:
        with self._read() as reads:
            return reads.order_reads.get(order_id)
