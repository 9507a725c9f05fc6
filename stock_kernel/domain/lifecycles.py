"""
Alert and purchase order lifecycles.

The single allowed-transition tables for the two operator-facing state
machines.  Services never compare states by hand; they resolve an action
through these workflows and raise when no transition exists.
"""

from stock_kernel.domain.types import AlertAction, AlertState, OrderState
from stock_kernel.domain.workflow import Guard, Transition, Workflow
from stock_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycles")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ALL_LINES_RECEIVED = Guard(
    name="all_lines_received",
    description="Every order line has received its full ordered quantity",
)


# -----------------------------------------------------------------------------
# Alert lifecycle
# -----------------------------------------------------------------------------

_A = AlertState

ALERT_WORKFLOW = Workflow(
    name="inventory_alert",
    description="Operator handling of replenishment and stock-health alerts",
    initial_state=_A.PENDING.value,
    states=tuple(s.value for s in AlertState),
    transitions=(
        Transition(_A.PENDING.value, _A.IN_PROGRESS.value, AlertAction.CLAIM.value),
        Transition(_A.IN_PROGRESS.value, _A.RESOLVED.value, AlertAction.RESOLVE.value),
        Transition(_A.IN_PROGRESS.value, _A.ESCALATED.value, AlertAction.ESCALATE.value),
        Transition(_A.ESCALATED.value, _A.RESOLVED.value, AlertAction.RESOLVE.value),
        Transition(_A.ESCALATED.value, _A.IN_PROGRESS.value, AlertAction.CLAIM.value),
        Transition(_A.PENDING.value, _A.IGNORED.value, AlertAction.IGNORE.value),
        Transition(_A.IN_PROGRESS.value, _A.IGNORED.value, AlertAction.IGNORE.value),
        Transition(
            _A.PENDING.value, _A.RESOLVED.value, AlertAction.AUTO_RESOLVE.value,
            system_only=True,
        ),
        Transition(
            _A.IN_PROGRESS.value, _A.RESOLVED.value, AlertAction.AUTO_RESOLVE.value,
            system_only=True,
        ),
        Transition(
            _A.ESCALATED.value, _A.RESOLVED.value, AlertAction.AUTO_RESOLVE.value,
            system_only=True,
        ),
    ),
    terminal_states=(_A.RESOLVED.value, _A.IGNORED.value),
)


# -----------------------------------------------------------------------------
# Purchase order lifecycle
# -----------------------------------------------------------------------------

_O = OrderState

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Replenishment purchase order from draft to receipt",
    initial_state=_O.DRAFT.value,
    states=tuple(s.value for s in OrderState),
    transitions=(
        Transition(_O.DRAFT.value, _O.CONFIRMED.value, "confirm"),
        Transition(_O.DRAFT.value, _O.CANCELLED.value, "cancel"),
        Transition(_O.CONFIRMED.value, _O.CANCELLED.value, "cancel"),
        Transition(
            _O.CONFIRMED.value, _O.RECEIVED.value, "receive",
            guard=ALL_LINES_RECEIVED,
        ),
        Transition(_O.CONFIRMED.value, _O.PARTIALLY_RECEIVED.value, "receive"),
        Transition(
            _O.PARTIALLY_RECEIVED.value, _O.RECEIVED.value, "receive",
            guard=ALL_LINES_RECEIVED,
        ),
        Transition(_O.PARTIALLY_RECEIVED.value, _O.PARTIALLY_RECEIVED.value, "receive"),
    ),
    terminal_states=(_O.RECEIVED.value, _O.CANCELLED.value),
)

logger.debug(
    "lifecycle_workflows_defined",
    extra={
        "workflows": [ALERT_WORKFLOW.name, PURCHASE_ORDER_WORKFLOW.name],
        "alert_transitions": len(ALERT_WORKFLOW.transitions),
        "order_transitions": len(PURCHASE_ORDER_WORKFLOW.transitions),
    },
)
