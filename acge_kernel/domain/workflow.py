"""
Canonical workflow types (``acge_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines.  The dossier lifecycle
(``acge_kernel.domain.dossier.DOSSIER_WORKFLOW``) is declared with these
types so the transition table lives in one place and is readable as data.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Each action is declared by exactly one transition.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the workflow service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``to_state`` of None means the transition keeps the current state
    (field edits).  ``cache_scope`` names the audience whose cached views go
    stale once the transition commits.
    """
    action: str
    from_states: tuple[str, ...]
    to_state: str | None
    allowed_roles: tuple[str, ...]
    guard: Guard | None = None
    cache_scope: str = "all"

    def target_for(self, current_state: str) -> str:
        """State reached when firing from ``current_state``."""
        return self.to_state if self.to_state is not None else current_state


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
                f"Workflow {self.name}: initial state {self.initial_state} "
                "is not a declared state"
            )
        seen: set[str] = set()
        for transition in self.transitions:
            if transition.action in seen:
                raise ValueError(
                    f"Workflow {self.name}: action {transition.action} declared twice"
                )
            seen.add(transition.action)
            targets = transition.from_states + (
                (transition.to_state,) if transition.to_state else ()
            )
            for state in targets:
                if state not in self.states:
                    raise ValueError(
                        f"Workflow {self.name}: transition {transition.action} "
                        f"references unknown state {state}"
                    )

    def transition(self, action: str) -> Transition:
        """Look up the transition declared for ``action``.

        Raises:
            KeyError: If no transition declares the action.
        """
        for transition in self.transitions:
            if transition.action == action:
                return transition
        raise KeyError(action)

    def can_fire(self, action: str, current_state: str) -> bool:
        return current_state in self.transition(action).from_states

    def edges(self) -> frozenset[tuple[str, str]]:
        """All (from, to) pairs that change state."""
        return frozenset(
            (source, t.to_state)
            for t in self.transitions
            if t.to_state is not None
            for source in t.from_states
        )
