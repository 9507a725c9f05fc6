"""
stock_services -- transaction-owning orchestration over the stock kernel.

Responsibility:
    Owns units of work, per-product serialization and post-commit event
    delivery.  ``ReplenishmentEngine`` is the canonical import surface for
    external collaborators.

Architecture position:
    Dependency direction:
        stock_services/ -> stock_kernel/  (allowed)
        stock_services/ -> stock_config/  (allowed)
        stock_kernel/   -> stock_services/ (FORBIDDEN)
"""

from stock_services.event_dispatch import DeliveryFailure, EventBus
from stock_services.replenishment_engine import EngineServices, ReplenishmentEngine

__all__ = [
    "DeliveryFailure",
    "EngineServices",
    "EventBus",
    "ReplenishmentEngine",
]
