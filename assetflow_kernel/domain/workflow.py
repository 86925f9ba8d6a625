"""
Canonical workflow types (``assetflow_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for lifecycle state machines.  Asset, deployment,
retirement and disposal workflows are all declared with these types so
that Guard, Transition, and Workflow are defined once.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Guards on a transition are evaluated in declaration order; the first
  failing guard determines the violation reported to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class GuardKind(str, Enum):
    """Which error family a failing guard maps to."""

    AUTHORIZATION = "authorization"
    BUSINESS_RULE = "business_rule"


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.  ``message`` is the violation text
    surfaced to callers when the guard fails.
    Non-goals: does not evaluate the condition -- the state machine does.
    """
    name: str
    description: str
    message: str
    kind: GuardKind = GuardKind.BUSINESS_RULE


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guards: tuple[Guard, ...] = ()


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a record lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    ``terminal_states`` are states with no outgoing transitions.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def actions(self) -> tuple[str, ...]:
        """Distinct action names in declaration order."""
        seen: list[str] = []
        for t in self.transitions:
            if t.action not in seen:
                seen.append(t.action)
        return tuple(seen)

    def transitions_for(self, action: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.action == action)

    def find_transition(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None
