"""
Dossier domain types (``acge_kernel.domain.dossier``).

Responsibility
--------------
Pure value objects for the dossier validation workflow: the closed status
set (with its legacy unaccented aliases), roles, the explicit actor
context, the dossier DTO and the declarative lifecycle
``DOSSIER_WORKFLOW``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  May import
only from ``domain/workflow``.

Invariants enforced
-------------------
* Statut is always a ``DossierStatus`` member; aliases are folded into the
  canonical accented value by ``normalize_status``.
* A dossier is created in ``BROUILLON`` regardless of input.
* The only state-changing edges are those declared in ``DOSSIER_WORKFLOW``.
* Field edits are allowed only from ``EDITABLE_STATUSES``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from acge_kernel.domain.workflow import Guard, Transition, Workflow


# =========================================================================
# Status set
# =========================================================================


class DossierStatus(str, Enum):
    """Dossier lifecycle states."""

    BROUILLON = "BROUILLON"
    EN_ATTENTE = "EN_ATTENTE"
    REJETE_CB = "REJETÉ_CB"
    VALIDE_CB = "VALIDÉ_CB"
    EN_ATTENTE_ORDONNANCEMENT = "EN_ATTENTE_ORDONNANCEMENT"
    REJETE_ORDONNATEUR = "REJETE_ORDONNATEUR"
    VALIDE_ORDONNATEUR = "VALIDÉ_ORDONNATEUR"
    ORDONNE = "ORDONNE"
    EN_ATTENTE_COMPTABILISATION = "EN_ATTENTE_COMPTABILISATION"
    REJETE_AC = "REJETE_AC"
    VALIDE_DEFINITIVEMENT = "VALIDÉ_DÉFINITIVEMENT"


# Legacy spellings still present in stored rows and client payloads.
STATUS_ALIASES: dict[str, DossierStatus] = {
    "REJETE_CB": DossierStatus.REJETE_CB,
    "VALIDE_CB": DossierStatus.VALIDE_CB,
}

EDITABLE_STATUSES: frozenset[DossierStatus] = frozenset({
    DossierStatus.EN_ATTENTE,
    DossierStatus.REJETE_CB,
    DossierStatus.BROUILLON,
})

TERMINAL_DOSSIER_STATUSES: frozenset[DossierStatus] = frozenset({
    DossierStatus.VALIDE_DEFINITIVEMENT,
})


def normalize_status(value: str | DossierStatus) -> DossierStatus:
    """Fold a raw statut (canonical or alias) into ``DossierStatus``.

    Raises:
        ValueError: If the value is not part of the closed set.
    """
    if isinstance(value, DossierStatus):
        return value
    if value in STATUS_ALIASES:
        return STATUS_ALIASES[value]
    return DossierStatus(value)


# =========================================================================
# Actors
# =========================================================================


class Role(str, Enum):
    """Roles consumed by the workflow."""

    SECRETAIRE = "SECRETAIRE"
    CONTROLEUR_BUDGETAIRE = "CONTROLEUR_BUDGETAIRE"
    ORDONNATEUR = "ORDONNATEUR"
    AGENT_COMPTABLE = "AGENT_COMPTABLE"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class ActorContext:
    """Who is calling.  Passed explicitly into every workflow operation."""

    user_id: str
    role: Role


# =========================================================================
# Lifecycle
# =========================================================================


class DossierAction(str, Enum):
    """Workflow operations, one per dedicated service method."""

    CREATE = "create"
    UPDATE = "update"
    SUBMIT = "submit"
    CB_VALIDATE = "cb_validate"
    CB_REJECT = "cb_reject"
    ORDONNATEUR_VALIDATE = "ordonnateur_validate"
    FINAL_VALIDATE = "final_validate"


OPERATION_TYPE_GATE = Guard(
    name="Validation du type d'opération",
    description="At least one operation-type validation row exists",
)
CONTROLES_FOND_GATE = Guard(
    name="Contrôles de fond",
    description="At least one fond-control validation row exists",
)
SYNTHESIS_GATE = Guard(
    name="Synthèse des vérifications ordonnateur",
    description="The ordonnateur verification synthesis is VALIDÉ",
)

_S = DossierStatus
_R = Role

DOSSIER_WORKFLOW = Workflow(
    name="dossier",
    description="ACGE dossier validation chain",
    initial_state=_S.BROUILLON.value,
    states=tuple(s.value for s in DossierStatus),
    terminal_states=(_S.VALIDE_DEFINITIVEMENT.value,),
    transitions=(
        Transition(
            action=DossierAction.SUBMIT.value,
            from_states=(_S.BROUILLON.value,),
            to_state=_S.EN_ATTENTE.value,
            allowed_roles=(_R.SECRETAIRE.value, _R.ADMIN.value),
            cache_scope="cb",
        ),
        Transition(
            action=DossierAction.CB_VALIDATE.value,
            from_states=(_S.EN_ATTENTE.value,),
            to_state=_S.VALIDE_CB.value,
            allowed_roles=(_R.CONTROLEUR_BUDGETAIRE.value, _R.ADMIN.value),
            guard=Guard(
                name="canValidate",
                description=f"{OPERATION_TYPE_GATE.name} and {CONTROLES_FOND_GATE.name}",
            ),
            cache_scope="ordonnateur",
        ),
        Transition(
            action=DossierAction.CB_REJECT.value,
            from_states=(_S.EN_ATTENTE.value,),
            to_state=_S.REJETE_CB.value,
            allowed_roles=(_R.CONTROLEUR_BUDGETAIRE.value, _R.ADMIN.value),
            cache_scope="ordonnateur",
        ),
        Transition(
            action=DossierAction.ORDONNATEUR_VALIDATE.value,
            from_states=(_S.VALIDE_CB.value, _S.EN_ATTENTE_ORDONNANCEMENT.value),
            to_state=_S.VALIDE_ORDONNATEUR.value,
            allowed_roles=(_R.ORDONNATEUR.value, _R.ADMIN.value),
            guard=SYNTHESIS_GATE,
            cache_scope="ac",
        ),
        Transition(
            action=DossierAction.FINAL_VALIDATE.value,
            from_states=(_S.VALIDE_ORDONNATEUR.value,),
            to_state=_S.VALIDE_DEFINITIVEMENT.value,
            allowed_roles=(_R.AGENT_COMPTABLE.value, _R.ADMIN.value),
            guard=SYNTHESIS_GATE,
            cache_scope="all",
        ),
        Transition(
            action=DossierAction.UPDATE.value,
            from_states=tuple(
                s.value for s in DossierStatus if s in EDITABLE_STATUSES
            ),
            to_state=None,
            allowed_roles=(_R.SECRETAIRE.value, _R.ADMIN.value),
            cache_scope="secretaire",
        ),
    ),
)

CREATE_ROLES: frozenset[Role] = frozenset({Role.SECRETAIRE, Role.ADMIN})


# =========================================================================
# Records
# =========================================================================


@dataclass(frozen=True)
class Dossier:
    """Typed snapshot of a dossier row."""

    id: UUID
    numero_dossier: str
    statut: DossierStatus
    objet_operation: str
    beneficiaire: str
    numero_nature: str | None = None
    montant: Decimal | None = None
    montant_ordonnance: Decimal | None = None
    poste_comptable_id: str | None = None
    poste_comptable: str | None = None
    nature_document_id: str | None = None
    secretaire_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    validated_cb_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    ordonnanced_at: datetime | None = None
    ordonnancement_comment: str | None = None
    validated_definitively_at: datetime | None = None
    validation_definitive_comment: str | None = None
    row_version: int = 1

    @property
    def is_editable(self) -> bool:
        return self.statut in EDITABLE_STATUSES

    @property
    def is_final(self) -> bool:
        return self.statut in TERMINAL_DOSSIER_STATUSES


@dataclass(frozen=True)
class DossierDraft:
    """Input for dossier creation.  Any statut supplied by a client is ignored."""

    objet_operation: str
    beneficiaire: str
    numero_nature: str
    numero_dossier: str | None = None
    montant: Decimal | None = None
    poste_comptable_id: str | None = None
    poste_comptable: str | None = None
    nature_document_id: str | None = None


# Fields a Secretary may change while the dossier is editable.
EDITABLE_FIELDS: frozenset[str] = frozenset({
    "numero_dossier",
    "numero_nature",
    "objet_operation",
    "beneficiaire",
    "montant",
    "poste_comptable_id",
    "poste_comptable",
    "nature_document_id",
})


@dataclass(frozen=True)
class DossierChanges:
    """Partial update.  Only keys present in ``values`` are written."""

    values: dict[str, object] = field(default_factory=dict)
