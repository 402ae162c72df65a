"""
Validation gate types (``acge_kernel.domain.gates``).

Responsibility
--------------
Pure decision logic of the validation gate evaluator: given the outcome
of the two independent record lookups (operation-type validation and
fond controls), derive ``can_validate`` and the ordered list of missing
validations.

Architecture position
---------------------
**Kernel domain layer** -- pure functions and frozen value objects.
The lookups themselves live in ``selectors/validation_selector``.

Invariants enforced
-------------------
* A check is satisfied by the existence of at least one row.  The
  ``valide`` flag of fond-control rows is carried as metadata only.
* ``can_validate`` is the AND of both checks.
* ``missing_validations`` lists operation type before fond controls.
* A failed lookup is never satisfied and is reported once as
  ``VERIFICATION_ERROR`` instead of its gate label.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

MISSING_OPERATION_TYPE = "Validation du type d'opération"
MISSING_CONTROLES_FOND = "Contrôles de fond"
VERIFICATION_ERROR = "Erreur de vérification"


class GateCategory(str, Enum):
    """The two record categories checked before a CB decision."""

    OPERATION_TYPE = "operation_type"
    CONTROLES_FOND = "controles_fond"

    @property
    def label(self) -> str:
        if self is GateCategory.OPERATION_TYPE:
            return MISSING_OPERATION_TYPE
        return MISSING_CONTROLES_FOND


@dataclass(frozen=True)
class GateCheck:
    """Outcome of one record lookup."""

    category: GateCategory
    record_count: int = 0
    last_created_at: datetime | None = None
    failed_records: int = 0
    error: str | None = None

    @property
    def satisfied(self) -> bool:
        return self.error is None and self.record_count > 0

    @property
    def all_valid(self) -> bool:
        """Satisfied, and no record in the category was marked invalid."""
        return self.satisfied and self.failed_records == 0

    @classmethod
    def failed(cls, category: GateCategory, error: str) -> GateCheck:
        return cls(category=category, error=error)


@dataclass(frozen=True)
class GateEvaluation:
    """Combined gate result for one dossier."""

    dossier_id: UUID
    operation_type: GateCheck
    controles_fond: GateCheck
    missing_validations: tuple[str, ...]

    @property
    def has_operation_type_validation(self) -> bool:
        return self.operation_type.satisfied

    @property
    def has_controles_fond_validation(self) -> bool:
        return self.controles_fond.satisfied

    @property
    def can_validate(self) -> bool:
        return self.has_operation_type_validation and self.has_controles_fond_validation

    @property
    def errors(self) -> tuple[str, ...]:
        """Categories whose lookup failed."""
        return tuple(
            check.category.value
            for check in (self.operation_type, self.controles_fond)
            if check.error is not None
        )

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


def evaluate_gate_checks(
    dossier_id: UUID,
    operation_type: GateCheck,
    controles_fond: GateCheck,
) -> GateEvaluation:
    """Combine two lookups into a ``GateEvaluation``.

    Pure function: identical checks always give an identical evaluation.
    """
    missing: list[str] = []
    for check in (operation_type, controles_fond):
        if check.error is not None:
            if VERIFICATION_ERROR not in missing:
                missing.append(VERIFICATION_ERROR)
        elif not check.satisfied:
            missing.append(check.category.label)

    return GateEvaluation(
        dossier_id=dossier_id,
        operation_type=operation_type,
        controles_fond=controles_fond,
        missing_validations=tuple(missing),
    )
