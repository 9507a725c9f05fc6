"""
Canonical workflow types (``stock_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for lifecycle state machines.  Alerts and purchase orders
declare their allowed transitions once, as a ``Workflow`` constant, and the
services ask the workflow which transition (if any) an action maps to.
Transition legality therefore lives in a single table per entity.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A named condition that must hold before a guarded transition fires.

    Descriptive only: the caller evaluates the condition and passes the
    names of satisfied guards to ``Workflow.transition_for``.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition.

    ``system_only`` transitions are reserved for engine-initiated changes
    (e.g. auto-resolving alerts on receipt) and are refused for operators.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    system_only: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                f"is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} "
                    f"references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    f"has an outgoing transition"
                )

    @property
    def actions(self) -> frozenset[str]:
        return frozenset(t.action for t in self.transitions)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def allowed_actions(self, state: str, include_system: bool = False) -> tuple[str, ...]:
        """Actions available from ``state``, in declaration order, de-duplicated."""
        seen: list[str] = []
        for t in self.transitions:
            if t.from_state != state:
                continue
            if t.system_only and not include_system:
                continue
            if t.action not in seen:
                seen.append(t.action)
        return tuple(seen)

    def transition_for(
        self,
        from_state: str,
        action: str,
        satisfied_guards: Iterable[str] = (),
        include_system: bool = False,
    ) -> Transition | None:
        """
        Resolve the transition fired by ``action`` from ``from_state``.

        Guarded transitions whose guard is satisfied win over unguarded ones;
        unsatisfied guarded transitions are skipped.  Returns None when the
        action is not allowed from the state.
        """
        satisfied = frozenset(satisfied_guards)
        fallback: Transition | None = None
        for t in self.transitions:
            if t.from_state != from_state or t.action != action:
                continue
            if t.system_only and not include_system:
                continue
            if t.guard is None:
                fallback = fallback or t
            elif t.guard.name in satisfied:
                return t
        return fallback
