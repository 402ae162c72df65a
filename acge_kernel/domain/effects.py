"""
Transition effects (``acge_kernel.domain.effects``).

Responsibility
--------------
Describe the side effects a committed transition asks for, without
performing them.  The workflow service returns them inside a
``TransitionOutcome``; ``acge_services.effects.EffectDispatcher`` executes
them after the transaction commits.  A failing sink never undoes the
transition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from acge_kernel.domain.dossier import Dossier


@dataclass(frozen=True)
class NotifyEffect:
    """One structured event for asynchronous notification fan-out."""

    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InvalidateCacheEffect:
    """Cached views of ``dossier_id`` for ``scope`` are stale."""

    dossier_id: str
    scope: str

    @property
    def keys(self) -> tuple[str, ...]:
        return (f"dossier:{self.dossier_id}", f"dossiers:{self.scope}")


Effect = NotifyEffect | InvalidateCacheEffect


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of a workflow operation: the new dossier state and effects to run."""

    dossier: Dossier
    effects: tuple[Effect, ...] = ()
    previous_status: str | None = None
    quitus_numero: str | None = None

    @property
    def notifications(self) -> tuple[NotifyEffect, ...]:
        return tuple(e for e in self.effects if isinstance(e, NotifyEffect))

    @property
    def invalidations(self) -> tuple[InvalidateCacheEffect, ...]:
        return tuple(e for e in self.effects if isinstance(e, InvalidateCacheEffect))
