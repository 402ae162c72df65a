"""
Ordonnateur verification synthesis types (``acge_kernel.domain.synthesis``).

Responsibility
--------------
Value objects for the per-dossier rollup of ordonnateur field
verifications and the pure rule that derives its statut.

Invariants enforced
-------------------
* statut is VALIDÉ only when no verification is rejected and at least
  one verification exists.
* Any rejected verification makes the synthesis REJETÉ.
* Otherwise (no verification yet) the synthesis is EN_COURS.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class SynthesisStatus(str, Enum):
    VALIDE = "VALIDÉ"
    REJETE = "REJETÉ"
    EN_COURS = "EN_COURS"


@dataclass(frozen=True)
class SyntheseVerification:
    """The single synthesis row of a dossier."""

    dossier_id: UUID
    statut: SynthesisStatus
    total_verifications: int
    verifications_rejetees: int
    verifications_validees: int = 0
    commentaire_general: str | None = None
    updated_at: datetime | None = None

    @property
    def is_validated(self) -> bool:
        return self.statut is SynthesisStatus.VALIDE


@dataclass(frozen=True)
class FieldVerification:
    """One ordonnateur check on one dossier field."""

    dossier_id: UUID
    critere: str
    valide: bool
    commentaire: str | None
    verified_by: str
    verified_at: datetime


def derive_synthesis_status(total: int, rejetees: int) -> SynthesisStatus:
    """Statut of a synthesis with ``total`` verifications, ``rejetees`` rejected."""
    if rejetees > 0:
        return SynthesisStatus.REJETE
    if total > 0:
        return SynthesisStatus.VALIDE
    return SynthesisStatus.EN_COURS


def synthesis_gate_reason(synthesis: SyntheseVerification | None) -> str:
    """Why ``synthesis`` does not open the synthesis gate."""
    if synthesis is None:
        return "aucune synthèse des vérifications ordonnateur"
    return (
        f"synthèse {synthesis.statut.value}, VALIDÉ requis "
        f"({synthesis.verifications_rejetees}/{synthesis.total_verifications} rejetées)"
    )
