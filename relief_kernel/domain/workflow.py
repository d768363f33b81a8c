"""
Canonical workflow types (``relief_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the small per-entity state machines (ingredient
request, operation request, expense proof, meal batch, delivery task).
Each module declares its lifecycle once as a ``Workflow``; services move
entities only through ``Workflow.apply``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects, zero I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions; any action from one raises
  ``InvalidStateTransitionError`` (this is what makes approve / reject
  idempotent-guarded).
"""

from __future__ import annotations

from dataclasses import dataclass

from relief_kernel.exceptions import InvalidStateTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires.

    Descriptive only: the owning service evaluates it.
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
    """A state machine definition for an entity lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state {self.initial_state!r} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t.action!r} references unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: terminal state {t.from_state!r} has an outgoing transition")

    def find(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def find_to(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def actions_from(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def apply(self, entity_id: object, current_state: str, action: str) -> str:
        """Return the target state for ``action`` or raise.

        Raises:
            InvalidStateTransitionError: no transition for (state, action).
        """
        transition = self.find(current_state, action)
        if transition is None:
            raise InvalidStateTransitionError(
                self.name, str(entity_id), current_state, action,
            )
        return transition.to_state
