"""
ValidationGateEvaluator -- the single authoritative gate computation.

Responsibility:
    Decide whether a dossier carries the evidence required before a CB
    decision: at least one operation-type validation and at least one
    fond-control validation.  Both the CB-validate transition and the
    public validation-status view call ``evaluate_gates`` so they can never
    disagree.

Architecture position:
    Kernel > Services.  Reads through ValidationSelector, decides through
    ``domain.gates.evaluate_gate_checks``.

Invariants enforced:
    - Pure read, no writes; identical store state gives identical results.
    - The two lookups are independent.  A failed lookup fails closed and
      shows up as "Erreur de vérification", distinct from a missing gate.
    - Existence only: a fond control recorded with ``valide`` false still
      satisfies the gate.  Its count is exposed in the details for
      reviewers.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from acge_kernel.domain.gates import (
    GateCategory,
    GateCheck,
    GateEvaluation,
    evaluate_gate_checks,
)
from acge_kernel.exceptions import InfrastructureError
from acge_kernel.logging_config import get_logger
from acge_kernel.selectors.validation_selector import ValidationSelector

logger = get_logger("services.gate_evaluator")


class ValidationGateEvaluator:
    """Evaluates the CB validation gates of a dossier."""

    def __init__(self, session: Session, selector: ValidationSelector | None = None):
        self._selector = selector or ValidationSelector(session)

    def _run_check(self, category: GateCategory, lookup, dossier_id: UUID) -> GateCheck:
        try:
            return lookup(dossier_id)
        except InfrastructureError as exc:
            logger.warning(
                "gate_lookup_failed",
                extra={
                    "dossier_id": str(dossier_id),
                    "category": category.value,
                    "error": exc.detail,
                },
            )
            return GateCheck.failed(category, exc.detail)

    def evaluate_gates(self, dossier_id: UUID) -> GateEvaluation:
        """Evaluate both gates.

        A non-existent dossier has no records and is simply not satisfied.
        """
        operation_type = self._run_check(
            GateCategory.OPERATION_TYPE,
            self._selector.operation_type_check,
            dossier_id,
        )
        controles_fond = self._run_check(
            GateCategory.CONTROLES_FOND,
            self._selector.controles_fond_check,
            dossier_id,
        )
        evaluation = evaluate_gate_checks(dossier_id, operation_type, controles_fond)

        logger.info(
            "gate_evaluated",
            extra={
                "dossier_id": str(dossier_id),
                "can_validate": evaluation.can_validate,
                "missing_validations": list(evaluation.missing_validations),
                "errors": list(evaluation.errors),
            },
        )
        return evaluation

    def status_view(self, dossier_id: UUID) -> dict[str, Any]:
        """The combined validation-status payload served over HTTP."""
        evaluation = self.evaluate_gates(dossier_id)
        return gate_evaluation_payload(evaluation)


def _check_details(check: GateCheck) -> dict[str, Any]:
    details: dict[str, Any] = {
        "count": check.record_count,
        "lastValidation": (
            check.last_created_at.isoformat() if check.last_created_at else None
        ),
    }
    if check.category is GateCategory.CONTROLES_FOND:
        details["failedCount"] = check.failed_records
    if check.error is not None:
        details["error"] = check.error
    return details


def gate_evaluation_payload(evaluation: GateEvaluation) -> dict[str, Any]:
    """Wire representation of a gate evaluation."""
    return {
        "dossierId": str(evaluation.dossier_id),
        "hasOperationTypeValidation": evaluation.has_operation_type_validation,
        "hasControlesFondValidation": evaluation.has_controles_fond_validation,
        "canValidate": evaluation.can_validate,
        "missingValidations": list(evaluation.missing_validations),
        "errors": list(evaluation.errors),
        "details": {
            "operationType": _check_details(evaluation.operation_type),
            "controlesFond": _check_details(evaluation.controles_fond),
        },
    }
