"""
EventBus: registration, filtering and failure isolation.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from stock_kernel.domain.events import EventOutbox, MovementCommitted
from stock_kernel.domain.types import MovementKind
from stock_services.event_dispatch import EventBus


def _event(kind=MovementKind.SALE_OUT, voided=False):
    return MovementCommitted(
        movement_id=uuid4(),
        product_id=uuid4(),
        kind=kind,
        quantity=3,
        occurred_at=datetime(2024, 6, 14, 9, 0, tzinfo=timezone.utc),
        voided=voided,
    )


class TestSubscription:

    def test_delivers_in_registration_order(self):
        bus = EventBus()
        seen = []
        bus.subscribe("first", lambda e: seen.append(("first", e.movement_id)))
        bus.subscribe("second", lambda e: seen.append(("second", e.movement_id)))

        event = _event()
        assert bus.publish(event) == []
        assert seen == [("first", event.movement_id), ("second", event.movement_id)]

    def test_duplicate_name_rejected(self):
        bus = EventBus()
        bus.subscribe("alerts", lambda e: None)
        with pytest.raises(ValueError, match="already registered"):
            bus.subscribe("alerts", lambda e: None)

    def test_handler_must_be_callable(self):
        with pytest.raises(TypeError):
            EventBus().subscribe("broken", "not a function")

    def test_unsubscribe(self):
        bus = EventBus()
        bus.subscribe("alerts", lambda e: None)
        assert bus.unsubscribe("alerts") is True
        assert bus.unsubscribe("alerts") is False
        assert bus.subscriber_names == ()

    def test_filter(self):
        bus = EventBus()
        sales = []
        bus.subscribe("sales", sales.append, accepts=lambda e: e.is_sale)

        bus.publish(_event(MovementKind.OPENING_BALANCE))
        sale = _event()
        bus.publish(sale)
        assert sales == [sale]


class TestFailureIsolation:

    def test_failing_subscriber_does_not_stop_others(self):
        bus = EventBus()
        delivered = []

        def _explode(event):
            raise RuntimeError("subscriber down")

        bus.subscribe("broken", _explode)
        bus.subscribe("healthy", delivered.append)

        event = _event()
        failures = bus.publish(event)

        assert delivered == [event]
        [failure] = failures
        assert failure.subscriber == "broken"
        assert failure.movement_id == str(event.movement_id)
        assert failure.error_type == "RuntimeError"
        assert failure.message == "subscriber down"

    def test_publish_all_collects_failures(self):
        bus = EventBus()

        def _explode(event):
            raise KeyError(event.movement_id)

        bus.subscribe("broken", _explode)
        failures = bus.publish_all([_event(), _event()])
        assert [f.error_type for f in failures] == ["KeyError", "KeyError"]


class TestOutbox:

    def test_drain_returns_in_staging_order_and_clears(self):
        outbox = EventOutbox()
        first, second = _event(), _event(voided=True)
        outbox.stage(first)
        outbox.stage(second)

        assert len(outbox) == 2
        assert outbox.drain() == [first, second]
        assert outbox.drain() == []

    def test_discard(self):
        outbox = EventOutbox()
        outbox.stage(_event())
        assert outbox.discard() == 1
        assert len(outbox) == 0

    def test_movement_date(self):
        assert _event().movement_date.isoformat() == "2024-06-14"
