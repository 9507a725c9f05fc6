"""
Pytest fixtures for the stock engine test suite.

Provides:
- In-memory SQLite sessions for single-session service tests
- File-backed SQLite engines for facade and batch tests (several sessions,
  several threads)
- A deterministic clock, a seeded reference catalog and wired kernel
  services

Kernel services flush and never commit, so service tests share one session
and roll it back at teardown.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stock_config.schema import EngineSettings
from stock_kernel.db.engine import build_engine, create_tables
from stock_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from stock_kernel.domain.catalog import InMemoryCatalog, ProductRef, SupplierRef
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.dtos import MovementDraft
from stock_kernel.domain.events import EventOutbox
from stock_kernel.domain.types import MovementKind
from stock_kernel.logging_config import LogContext, configure_logging, reset_logging
from stock_services.replenishment_engine import EngineServices, ReplenishmentEngine

START_TIME = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


# =============================================================================
# Immutability
# =============================================================================


@pytest.fixture(autouse=True)
def _immutability_listeners():
    register_immutability_listeners()


@pytest.fixture
def without_immutability():
    """Temporarily drop the ORM guards (to prove the data is otherwise writable)."""
    unregister_immutability_listeners()
    yield
    register_immutability_listeners()


# =============================================================================
# Reference data
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(START_TIME)


@pytest.fixture
def actor_id() -> UUID:
    return uuid4()


@pytest.fixture
def supplier() -> SupplierRef:
    return SupplierRef(supplier_id=uuid4(), name="Acme Supply", lead_time_days=7)


@pytest.fixture
def product(supplier) -> ProductRef:
    """Fully costed product with a supplier and thresholds."""
    return ProductRef(
        product_id=uuid4(),
        sku="WID-001",
        name="Widget",
        category="hardware",
        supplier_id=supplier.supplier_id,
        unit_cost=Decimal("12.50"),
        order_cost=Decimal("50"),
        holding_cost=Decimal("2"),
        lead_time_days=7,
        minimum_stock=10,
        maximum_stock=500,
        reorder_point=20,
        location="A-01",
    )


@pytest.fixture
def bare_product() -> ProductRef:
    """Product without supplier, costs or thresholds."""
    return ProductRef(product_id=uuid4(), sku="BARE-001", name="Loose part")


@pytest.fixture
def inactive_product() -> ProductRef:
    return ProductRef(
        product_id=uuid4(), sku="OLD-001", name="Discontinued", is_active=False,
    )


@pytest.fixture
def catalog(product, bare_product, inactive_product, supplier) -> InMemoryCatalog:
    return InMemoryCatalog(
        products=[product, bare_product, inactive_product],
        suppliers=[supplier],
    )


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def memory_engine() -> Generator[Engine, None, None]:
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(memory_engine) -> Generator[Session, None, None]:
    factory = sessionmaker(bind=memory_engine, expire_on_commit=False)
    session = factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def file_engine(tmp_path) -> Generator[Engine, None, None]:
    engine = build_engine(f"sqlite:///{tmp_path / 'stock.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(file_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=file_engine, expire_on_commit=False)


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def outbox() -> EventOutbox:
    return EventOutbox()


@pytest.fixture
def services(session, catalog, settings, clock, outbox) -> EngineServices:
    """Every kernel service wired to the shared in-memory session."""
    return EngineServices(session, catalog, settings, clock, outbox)


@pytest.fixture
def engine(session_factory, catalog, settings, clock) -> ReplenishmentEngine:
    """Facade over a file-backed database."""
    return ReplenishmentEngine(session_factory, catalog, settings=settings, clock=clock)


# =============================================================================
# Helpers
# =============================================================================


@pytest.fixture
def stock_in(services, product, actor_id):
    """Append an in-movement and recompute, as the facade would."""

    def _stock_in(
        quantity: int,
        product_id: UUID | None = None,
        kind: MovementKind = MovementKind.OPENING_BALANCE,
        expiry_date: date | None = None,
        lot_number: str | None = None,
    ):
        pid = product_id or product.product_id
        record = services.ledger.append(
            MovementDraft(
                product_id=pid,
                kind=kind,
                quantity=quantity,
                expiry_date=expiry_date,
                lot_number=lot_number,
            ),
            actor_id,
        )
        services.aggregator.recompute(pid, actor_id)
        return record

    return _stock_in


@pytest.fixture
def sell(services, product, actor_id, clock):
    """Append a sale (optionally backdated) and recompute."""

    def _sell(quantity: int, occurred_at: datetime | None = None, product_id: UUID | None = None):
        pid = product_id or product.product_id
        record = services.ledger.append(
            MovementDraft(
                product_id=pid,
                kind=MovementKind.SALE_OUT,
                quantity=quantity,
                occurred_at=occurred_at,
            ),
            actor_id,
        )
        services.aggregator.recompute(pid, actor_id)
        return record

    return _sell
