"""
Canonical workflow types (``stock_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines, plus the opname (physical
count) lifecycle expressed with them.  The Opname Engine asks the workflow
which transition an action takes instead of string-comparing statuses.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass

from stock_kernel.domain.values import OpnameStatus


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the engine does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``writes_ledger=True`` marks the transition that produces stock
    movements.  Exactly one such transition may fire per document.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    writes_ledger: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
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
                f"is not one of {self.states}"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} references "
                    f"unknown state ({t.from_state!r} -> {t.to_state!r})"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    f"has outgoing transition {t.action!r}"
                )

    def transition_for(self, from_state: str, action: str) -> Transition | None:
        """Return the transition ``action`` takes from ``from_state``, if any."""
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states


# ---------------------------------------------------------------------------
# Opname lifecycle
# ---------------------------------------------------------------------------

_ALL_ITEMS_COUNTED = Guard(
    name="all_items_counted",
    description="Every item in the session has a physical count",
)

OPNAME_WORKFLOW = Workflow(
    name="stock_opname",
    description="Physical stock count: snapshot, count, apply correction once",
    initial_state=OpnameStatus.DRAFT.value,
    states=tuple(s.value for s in OpnameStatus),
    transitions=(
        Transition(
            OpnameStatus.DRAFT.value, OpnameStatus.COUNTING.value, action="record_count",
        ),
        Transition(
            OpnameStatus.COUNTING.value, OpnameStatus.COUNTING.value, action="record_count",
        ),
        # A session with no items has nothing to count and finalizes from draft.
        Transition(
            OpnameStatus.DRAFT.value,
            OpnameStatus.FINALIZED.value,
            action="finalize",
            guard=_ALL_ITEMS_COUNTED,
            writes_ledger=True,
        ),
        Transition(
            OpnameStatus.COUNTING.value,
            OpnameStatus.FINALIZED.value,
            action="finalize",
            guard=_ALL_ITEMS_COUNTED,
            writes_ledger=True,
        ),
    ),
    terminal_states=(OpnameStatus.FINALIZED.value,),
)
