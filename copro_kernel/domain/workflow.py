"""
Canonical workflow types (``copro_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines (budget lifecycle,
regularization lifecycle).  Modules declare their graphs in their own
``workflows.py``; services call ``Workflow.next_state`` to resolve an
action, so no transition is ever hand-coded with string comparisons.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* No action leads out of a terminal state.
"""

from __future__ import annotations

from dataclasses import dataclass

from copro_kernel.exceptions import IllegalTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires (descriptive)."""

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
            raise ValueError(f"{self.name}: initial state {self.initial_state!r} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t.action!r} references unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: terminal state {t.from_state!r} has outgoing transition")

    def allowed_actions(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)

    def next_state(self, state: str, action: str, entity_id: object = "") -> str:
        """
        Resolve ``action`` from ``state``.

        Raises:
            IllegalTransitionError: If no transition matches.
        """
        for t in self.transitions:
            if t.from_state == state and t.action == action:
                return t.to_state
        raise IllegalTransitionError(self.name, str(entity_id), state, action)
