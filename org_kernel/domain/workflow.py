"""
Workflow value objects (``org_kernel.domain.workflow``).

Pure state-machine definitions.  A Workflow is the single authoritative
transition table for a document lifecycle; services resolve every status
change through ``Workflow.resolve`` instead of comparing statuses inline.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* (from_state, action) pairs are unique.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Transition:
    """A valid state transition.

    ``records_decision=True`` marks transitions that must append exactly one
    approval record (review decisions, as opposed to withdrawals).
    """
    from_state: str
    to_state: str
    action: str
    records_decision: bool = False


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
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t} references unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: terminal state {t.from_state!r} has outgoing transition")
            key = (t.from_state, t.action)
            if key in seen:
                raise ValueError(f"{self.name}: duplicate transition for {key}")
            seen.add(key)

    def resolve(self, from_state: str, action: str) -> Transition | None:
        """Return the transition for (state, action), or None if not permitted."""
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def actions_from(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
