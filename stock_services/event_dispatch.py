"""
Post-commit event dispatch (``stock_services.event_dispatch``).

Responsibility:
    Delivers committed ledger events to in-process subscribers.  Each
    subscriber is independent: one failing never stops delivery to the
    others, and never reaches the writer whose transaction already
    committed.

Architecture position:
    Services -- owned by ReplenishmentEngine, which publishes only after the
    unit of work that staged the events has committed.

Delivery semantics:
    At-least-once.  Subscribers are idempotent (normalization replaces,
    alert evaluation deduplicates), so re-delivery is safe.  Failures are
    logged with the subscriber name and returned to the publisher, which
    records them for redelivery.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from stock_kernel.domain.events import MovementCommitted
from stock_kernel.logging_config import get_logger

logger = get_logger("services.events")

Handler = Callable[[MovementCommitted], None]
EventFilter = Callable[[MovementCommitted], bool]


@dataclass(frozen=True)
class Subscription:
    name: str
    handler: Handler
    accepts: EventFilter | None = None

    def wants(self, event: MovementCommitted) -> bool:
        return self.accepts is None or self.accepts(event)


@dataclass(frozen=True)
class DeliveryFailure:
    subscriber: str
    event: MovementCommitted
    error_type: str
    message: str

    @property
    def movement_id(self) -> str:
        return str(self.event.movement_id)


class EventBus:
    """Synchronous, in-process publish/subscribe for ledger events."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []

    def subscribe(
        self,
        name: str,
        handler: Handler,
        accepts: EventFilter | None = None,
    ) -> None:
        """Register ``handler`` under a unique ``name``, optionally filtered."""
        if not callable(handler):
            raise TypeError("handler must be callable")
        with self._lock:
            if any(s.name == name for s in self._subscriptions):
                raise ValueError(f"subscriber {name!r} already registered")
            self._subscriptions.append(Subscription(name, handler, accepts))
        logger.debug("event_subscriber_registered", extra={"subscriber": name})

    def unsubscribe(self, name: str) -> bool:
        with self._lock:
            before = len(self._subscriptions)
            self._subscriptions = [s for s in self._subscriptions if s.name != name]
            return len(self._subscriptions) != before

    @property
    def subscriber_names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(s.name for s in self._subscriptions)

    def publish(self, event: MovementCommitted) -> list[DeliveryFailure]:
        """Deliver one event to every interested subscriber, in registration order."""
        with self._lock:
            subscriptions = list(self._subscriptions)

        failures: list[DeliveryFailure] = []
        for subscription in subscriptions:
            if not subscription.wants(event):
                continue
            try:
                subscription.handler(event)
            except Exception as exc:
                logger.exception(
                    "event_subscriber_failed",
                    extra={
                        "subscriber": subscription.name,
                        "movement_id": str(event.movement_id),
                        "product_id": str(event.product_id),
                    },
                )
                failures.append(DeliveryFailure(
                    subscriber=subscription.name,
                    event=event,
                    error_type=type(exc).__name__,
                    message=str(exc),
                ))
        return failures

    def publish_all(self, events: Iterable[MovementCommitted]) -> list[DeliveryFailure]:
        failures: list[DeliveryFailure] = []
        for event in events:
            failures.extend(self.publish(event))
        return failures
