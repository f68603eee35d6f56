"""
Canonical workflow types (``rental_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for status state machines.  Used by the lease and
invoicing modules so that Guard, Transition, and Workflow are defined
once, together with the lookup that turns "edge not in the table" into
an ``InvalidStatusTransitionError``.

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

from dataclasses import dataclass

from rental_kernel.exceptions import InvalidStatusTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only; the owning service evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state}->{t.to_state} "
                    "references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} has an outgoing transition"
                )

    def targets_from(self, state: str) -> tuple[str, ...]:
        """All states reachable in one step from ``state``."""
        return tuple(t.to_state for t in self.transitions if t.from_state == state)

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def require(self, entity: str, from_state: str, to_state: str) -> Transition:
        """Return the transition or raise InvalidStatusTransitionError."""
        transition = self.find(from_state, to_state)
        if transition is None:
            raise InvalidStatusTransitionError(entity, from_state, to_state)
        return transition
