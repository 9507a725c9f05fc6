"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The movement ledger is audit-grade: a movement, once appended, is never
edited and never deleted.  The only permitted change is voiding it, and a
movement can be voided exactly once.  Optimization results are likewise
immutable; a newer result supersedes an older one instead of editing it.

SQLAlchemy fires events before UPDATE/DELETE reach the database.  The
listeners below inspect attribute history and raise
``ImmutabilityViolationError`` before any SQL is sent:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | When Immutable          | Mutable fields
---------------------|-------------------------|------------------------------------
MovementModel        | ALWAYS (from creation)  | void fields; voided only false->true
OptimizationResult   | ALWAYS (from creation)  | none (audit metadata only)

updated_at/updated_by_id are audit metadata and are always allowed to change.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup (idempotent)

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
        field=field,
    )


def _check_movement_immutability(mapper, connection, target):
    """
    Only the void fields may change on a movement, and ``voided`` may only
    go from False to True.
    """
    from stock_kernel.models.movement import MOVEMENT_MUTABLE_FIELDS, MovementModel

    if not isinstance(target, MovementModel):
        return

    voided_history = get_history(target, "voided")
    if voided_history.deleted and voided_history.deleted[0]:
        # voided was already True before this flush
        raise _blocked(
            "Movement", target.id, "UPDATE",
            "A voided movement cannot be un-voided or voided again",
            field="voided",
        )

    # Once voided, even the void fields are frozen
    voiding_now = bool(voided_history.added and voided_history.added[0])
    mutable = MOVEMENT_MUTABLE_FIELDS if voiding_now else _AUDIT_METADATA_FIELDS

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in mutable:
            continue
        if attr.history.has_changes():
            raise _blocked(
                "Movement", target.id, "UPDATE",
                f"Cannot modify field '{attr.key}' on an appended movement",
                field=attr.key,
            )


def _check_movement_delete(mapper, connection, target):
    """Movements are never physically deleted."""
    from stock_kernel.models.movement import MovementModel

    if not isinstance(target, MovementModel):
        return

    raise _blocked(
        "Movement", target.id, "DELETE",
        "Ledger movements cannot be deleted; void them instead",
    )


def _check_optimization_result_immutability(mapper, connection, target):
    """Optimization results never change after insert."""
    from stock_kernel.models.optimization import OptimizationResultModel

    if not isinstance(target, OptimizationResultModel):
        return

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in _AUDIT_METADATA_FIELDS:
            continue
        if attr.history.has_changes():
            raise _blocked(
                "OptimizationResult", target.id, "UPDATE",
                "Optimization results are immutable; compute a new one instead",
                field=attr.key,
            )


def _check_optimization_result_delete(mapper, connection, target):
    from stock_kernel.models.optimization import OptimizationResultModel

    if not isinstance(target, OptimizationResultModel):
        return

    raise _blocked(
        "OptimizationResult", target.id, "DELETE",
        "Optimization results cannot be deleted",
    )


def _listeners():
    from stock_kernel.models.movement import MovementModel
    from stock_kernel.models.optimization import OptimizationResultModel

    return (
        (MovementModel, "before_update", _check_movement_immutability),
        (MovementModel, "before_delete", _check_movement_delete),
        (OptimizationResultModel, "before_update", _check_optimization_result_immutability),
        (OptimizationResultModel, "before_delete", _check_optimization_result_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners.  Safe to call more than once."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """Remove immutability listeners.  FOR TESTING ONLY."""
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
