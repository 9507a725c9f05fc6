"""
Reference catalog boundary (``stock_kernel.domain.catalog``).

Product, category and supplier master data live outside the kernel.  The
kernel only reads them by ID through ``ReferenceCatalog``; the frozen refs
below are the full extent of what it needs to know.

``InMemoryCatalog`` is the bundled implementation, used by tests and by
deployments that load master data at startup.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID


@dataclass(frozen=True)
class ProductRef:
    """Read-only view of a product's replenishment attributes."""
    product_id: UUID
    sku: str
    name: str
    category: str | None = None
    supplier_id: UUID | None = None
    unit_cost: Decimal | None = None
    order_cost: Decimal | None = None
    holding_cost: Decimal | None = None
    lead_time_days: int | None = None
    minimum_stock: int = 0
    maximum_stock: int | None = None
    reorder_point: int = 0
    location: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class SupplierRef:
    """Read-only view of a supplier."""
    supplier_id: UUID
    name: str
    lead_time_days: int | None = None
    is_active: bool = True


@runtime_checkable
class ReferenceCatalog(Protocol):
    """Read-only lookups against external master data."""

    def get_product(self, product_id: UUID) -> ProductRef | None: ...

    def get_supplier(self, supplier_id: UUID) -> SupplierRef | None: ...

    def list_product_ids(self) -> list[UUID]: ...


class InMemoryCatalog:
    """Thread-safe in-memory ReferenceCatalog."""

    def __init__(
        self,
        products: Iterable[ProductRef] = (),
        suppliers: Iterable[SupplierRef] = (),
    ):
        self._lock = threading.Lock()
        self._products: dict[UUID, ProductRef] = {p.product_id: p for p in products}
        self._suppliers: dict[UUID, SupplierRef] = {s.supplier_id: s for s in suppliers}

    def add_product(self, product: ProductRef) -> None:
        with self._lock:
            self._products[product.product_id] = product

    def get_product(self, product_id: UUID) -> ProductRef | None:
        with self._lock:
            return self._products.get(product_id)

    def get_supplier(self, supplier_id: UUID) -> SupplierRef | None:
        with self._lock:
            return self._suppliers.get(supplier_id)

    def list_product_ids(self) -> list[UUID]:
        with self._lock:
            return sorted(self._products, key=str)
